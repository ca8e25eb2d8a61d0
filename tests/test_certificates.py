"""
Certificate tests.

Covers:
    - Expiry and numbering helpers
    - Course type & certificate template management
    - Issuing for booking candidates and open-course delegates, revocation
    - Listing filters, XLSX export, emailing
    - Public verification and its log
"""

import io
from datetime import date

from openpyxl import load_workbook

from backoffice.middleware.proxy import init_proxy_fix
from backoffice.models.certificate import (
    calculate_expiry_date, days_until_expiry, expiry_status, format_certificate_number,
)
from backoffice.models.email import EmailQueueEntry
from backoffice.services.certificate_service import DEFAULT_COURSE_TYPES, seed_course_types
from backoffice.utils.helpers import add_months


def _make_passed_candidate(client, course_type_id, **kw):
    booking = client.post("/api/v1/bookings", json={
        "title": "Forklift novice", "booking_date": "2030-06-10", "num_days": 3,
        "course_type_id": course_type_id,
    }).get_json()
    payload = {"candidate_name": "Jo Bloggs", "email": "jo@acme.com", "passed": True}
    payload.update(kw)
    cand = client.post(f"/api/v1/bookings/{booking['id']}/candidates", json=payload).get_json()
    return booking, cand


def _issue(client, booking_id, candidate_id, **kw):
    return client.post(f"/api/v1/bookings/{booking_id}/candidates/{candidate_id}/certificate", json=kw)


def _make_certificate(client, course_type_id, issue_date="2030-06-12", **kw):
    booking, cand = _make_passed_candidate(client, course_type_id, **kw)
    res = _issue(client, booking["id"], cand["id"], issue_date=issue_date)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


class TestExpiryHelpers:
    def test_expiry_adds_validity_months(self):
        assert calculate_expiry_date(date(2026, 3, 15), 36) == date(2029, 3, 15)

    def test_expiry_clamps_month_end(self):
        assert calculate_expiry_date(date(2024, 2, 29), 12) == date(2025, 2, 28)
        assert add_months(date(2026, 1, 31), 1) == date(2026, 2, 28)

    def test_no_validity_never_expires(self):
        assert calculate_expiry_date(date(2026, 3, 15), None) is None
        assert expiry_status(None) == "valid"

    def test_expiry_status(self):
        today = date(2026, 6, 1)
        assert expiry_status(date(2026, 5, 31), today) == "expired"
        assert expiry_status(date(2026, 6, 1), today) == "expiring_soon"
        assert expiry_status(date(2026, 9, 1), today) == "expiring_soon"
        assert expiry_status(date(2026, 9, 2), today) == "valid"

    def test_days_until_expiry(self):
        today = date(2026, 6, 1)
        assert days_until_expiry(date(2026, 6, 11), today) == 10
        assert days_until_expiry(date(2026, 5, 1), today) == 0
        assert days_until_expiry(None, today) is None

    def test_number_format(self):
        assert format_certificate_number("flt", 2026, 42) == "FLT-2026-00042"


# ═════════════════════════════════════════════════════════════════════════════
# Course types & templates
# ═════════════════════════════════════════════════════════════════════════════


class TestCourseTypes:
    def test_seed(self):
        assert seed_course_types() == len(DEFAULT_COURSE_TYPES)
        assert seed_course_types() == 0

    def test_create_uppercases_code(self, client):
        res = client.post("/api/v1/course-types", json={
            "name": "Lorry Loader", "code": "lgv", "certificate_validity_months": 60,
            "required_fields": [{"name": "crane_type"}],
        })
        assert res.status_code == 201
        body = res.get_json()
        assert body["code"] == "LGV"
        assert body["required_fields"][0]["label"] == "crane_type"
        assert body["required_fields"][0]["type"] == "text"

    def test_code_rules(self, client, course_type):
        assert client.post("/api/v1/course-types",
                           json={"name": "X", "code": "F-LT"}).status_code == 422
        assert client.post("/api/v1/course-types",
                           json={"name": "X", "code": "flt"}).status_code == 409

    def test_invalid_required_field_type(self, client):
        res = client.post("/api/v1/course-types", json={
            "name": "X", "code": "X1", "required_fields": [{"name": "a", "type": "blob"}],
        })
        assert res.status_code == 422

    def test_inactive_hidden(self, client, course_type):
        client.put(f"/api/v1/course-types/{course_type.id}", json={"active": False})
        assert client.get("/api/v1/course-types").get_json()["total"] == 0
        assert client.get("/api/v1/course-types?include_inactive=true").get_json()["total"] == 1

    def test_code_immutable_once_certified(self, client, course_type):
        _make_certificate(client, course_type.id)
        res = client.put(f"/api/v1/course-types/{course_type.id}", json={"code": "FLT2"})
        assert res.status_code == 422
        assert client.delete(f"/api/v1/course-types/{course_type.id}").status_code == 409

    def test_delete_unused(self, client, course_type):
        client.post("/api/v1/certificate-templates",
                    json={"name": "FLT A4", "course_type_id": course_type.id})
        assert client.delete(f"/api/v1/course-types/{course_type.id}").status_code == 200
        assert client.get("/api/v1/certificate-templates").get_json()["total"] == 0


class TestCertificateTemplates:
    def test_create_defaults_and_duplicate(self, client, course_type):
        res = client.post("/api/v1/certificate-templates", json={
            "name": "FLT A4", "course_type_id": course_type.id,
            "fields_config": [{"field": "candidate_name", "x": 100, "y": 200}],
        })
        assert res.status_code == 201
        tpl = res.get_json()
        assert tpl["page_width"] == 1754
        assert tpl["page_height"] == 1240
        assert tpl["course_type_name"] == "Forklift Truck"

        copy = client.post(f"/api/v1/certificate-templates/{tpl['id']}/duplicate").get_json()
        assert copy["name"] == "FLT A4 (Copy)"
        assert copy["fields_config"] == tpl["fields_config"]
        assert copy["is_active"] is True

    def test_page_size_must_be_positive(self, client):
        res = client.post("/api/v1/certificate-templates", json={"name": "Bad", "page_width": 0})
        assert res.status_code == 422

    def test_unknown_course_type(self, client):
        res = client.post("/api/v1/certificate-templates", json={"name": "T", "course_type_id": 99})
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# Issuing & revocation
# ═════════════════════════════════════════════════════════════════════════════


class TestIssueForCandidate:
    def test_issue(self, client, course_type, trainer):
        booking, cand = _make_passed_candidate(client, course_type.id)
        client.post(f"/api/v1/bookings/{booking['id']}/move", json={"trainer_id": trainer.id})
        res = _issue(client, booking["id"], cand["id"], issue_date="2030-06-12")
        assert res.status_code == 201
        cert = res.get_json()
        assert cert["certificate_number"] == "FLT-2030-00001"
        assert cert["expiry_date"] == "2033-06-12"
        assert cert["course_date_start"] == "2030-06-10"
        assert cert["course_date_end"] == "2030-06-12"
        assert cert["trainer_name"] == "Sam Trainer"
        assert cert["status"] == "issued"

    def test_sequence_increments_per_year(self, client, course_type):
        first = _make_certificate(client, course_type.id)
        second = _make_certificate(client, course_type.id, candidate_name="Al Smith")
        other_year = _make_certificate(client, course_type.id, issue_date="2031-01-05",
                                       candidate_name="Cy Jones")
        assert first["certificate_number"] == "FLT-2030-00001"
        assert second["certificate_number"] == "FLT-2030-00002"
        assert other_year["certificate_number"] == "FLT-2031-00001"

    def test_candidate_must_have_passed(self, client, course_type):
        booking, cand = _make_passed_candidate(client, course_type.id, passed=False)
        assert _issue(client, booking["id"], cand["id"]).status_code == 422

    def test_booking_needs_course_type(self, client):
        booking = client.post("/api/v1/bookings",
                              json={"title": "X", "booking_date": "2030-06-10"}).get_json()
        cand = client.post(f"/api/v1/bookings/{booking['id']}/candidates",
                           json={"candidate_name": "Jo", "passed": True}).get_json()
        res = _issue(client, booking["id"], cand["id"])
        assert res.status_code == 422
        assert res.get_json()["details"]["course_type_id"] == "required"

    def test_one_live_certificate_per_course(self, client, course_type):
        booking, cand = _make_passed_candidate(client, course_type.id)
        cert = _issue(client, booking["id"], cand["id"]).get_json()
        assert _issue(client, booking["id"], cand["id"]).status_code == 409

        client.post(f"/api/v1/certificates/{cert['id']}/revoke", json={"reason": "Typo in name"})
        assert _issue(client, booking["id"], cand["id"]).status_code == 201

    def test_one_live_certificate_across_course_types(self, client, course_type):
        first_aid = client.post("/api/v1/course-types", json={
            "name": "First Aid at Work", "code": "FA", "certificate_validity_months": 36,
        }).get_json()
        booking, cand = _make_passed_candidate(client, course_type.id)
        assert _issue(client, booking["id"], cand["id"]).status_code == 201

        res = _issue(client, booking["id"], cand["id"], course_type_id=first_aid["id"])
        assert res.status_code == 409
        assert res.get_json()["details"]["field"] == "candidate_id"

    def test_required_fields_enforced(self, client):
        seed_course_types()
        cpc = client.get("/api/v1/course-types").get_json()["items"]
        cpc_id = next(ct["id"] for ct in cpc if ct["code"] == "CPC")
        booking, cand = _make_passed_candidate(client, cpc_id)
        res = _issue(client, booking["id"], cand["id"])
        assert res.status_code == 422
        assert "licence_number" in res.get_json()["details"]

        res = _issue(client, booking["id"], cand["id"],
                     course_specific_data={"licence_number": "MORGA753116SM9IJ"})
        assert res.status_code == 201

    def test_candidate_course_data_used(self, client):
        seed_course_types()
        flt = next(ct for ct in client.get("/api/v1/course-types").get_json()["items"]
                   if ct["code"] == "FLT")
        booking, cand = _make_passed_candidate(client, flt["id"],
                                               course_data={"truck_type": "Counterbalance"})
        res = _issue(client, booking["id"], cand["id"])
        assert res.status_code == 201
        assert res.get_json()["course_specific_data"] == {"truck_type": "Counterbalance"}

    def test_candidate_must_belong_to_booking(self, client, course_type):
        booking, cand = _make_passed_candidate(client, course_type.id)
        other, _ = _make_passed_candidate(client, course_type.id)
        assert _issue(client, other["id"], cand["id"]).status_code == 404

    def test_active_template_picked(self, client, course_type):
        tpl = client.post("/api/v1/certificate-templates",
                          json={"name": "FLT A4", "course_type_id": course_type.id}).get_json()
        cert = _make_certificate(client, course_type.id)
        assert cert["certificate_template_id"] == tpl["id"]

    def test_booking_with_certificates_cannot_be_deleted(self, client, course_type):
        cert = _make_certificate(client, course_type.id)
        assert client.delete(f"/api/v1/bookings/{cert['booking_id']}").status_code == 409
        res = client.delete(f"/api/v1/bookings/{cert['booking_id']}/candidates/{cert['candidate_id']}")
        assert res.status_code == 409


class TestIssueForDelegate:
    def _delegate(self, client, course_type_id, attendance="attended"):
        session = client.post("/api/v1/open-courses/sessions", json={
            "event_title": "Forklift open course", "session_date": "2030-06-10",
            "end_date": "2030-06-12", "course_type_id": course_type_id,
        }).get_json()
        delegate = client.post(f"/api/v1/open-courses/sessions/{session['id']}/delegates",
                               json={"delegate_name": "Dee Legate",
                                     "delegate_email": "dee@acme.com"}).get_json()
        if attendance:
            client.put(f"/api/v1/open-courses/delegates/{delegate['id']}/attendance",
                       json={"attendance": attendance})
        return delegate

    def test_issue_marks_delegate(self, client, course_type):
        delegate = self._delegate(client, course_type.id)
        res = client.post(f"/api/v1/open-courses/delegates/{delegate['id']}/certificate",
                          json={"issue_date": "2030-06-12"})
        assert res.status_code == 201
        cert = res.get_json()
        assert cert["open_course_delegate_id"] == delegate["id"]
        assert cert["course_date_end"] == "2030-06-12"

        refreshed = client.get(f"/api/v1/open-courses/delegates/{delegate['id']}").get_json()
        assert refreshed["certificate_issued"] is True
        assert refreshed["certificate_number"] == cert["certificate_number"]

        again = client.post(f"/api/v1/open-courses/delegates/{delegate['id']}/certificate", json={})
        assert again.status_code == 409

    def test_absent_delegate_refused(self, client, course_type):
        delegate = self._delegate(client, course_type.id, attendance="absent")
        res = client.post(f"/api/v1/open-courses/delegates/{delegate['id']}/certificate", json={})
        assert res.status_code == 422

    def test_unmarked_delegate_refused(self, client, course_type):
        delegate = self._delegate(client, course_type.id, attendance=None)
        res = client.post(f"/api/v1/open-courses/delegates/{delegate['id']}/certificate", json={})
        assert res.status_code == 422

    def test_revoke_resets_delegate(self, client, course_type):
        delegate = self._delegate(client, course_type.id, attendance="late")
        cert = client.post(f"/api/v1/open-courses/delegates/{delegate['id']}/certificate",
                           json={}).get_json()
        assert client.delete(f"/api/v1/open-courses/delegates/{delegate['id']}").status_code == 409

        client.post(f"/api/v1/certificates/{cert['id']}/revoke", json={"reason": "Wrong course"})
        refreshed = client.get(f"/api/v1/open-courses/delegates/{delegate['id']}").get_json()
        assert refreshed["certificate_issued"] is False
        assert refreshed["certificate_number"] is None


class TestRevoke:
    def test_reason_required(self, client, course_type):
        cert = _make_certificate(client, course_type.id)
        assert client.post(f"/api/v1/certificates/{cert['id']}/revoke", json={}).status_code == 422

    def test_revoke_once(self, client, course_type):
        cert = _make_certificate(client, course_type.id)
        res = client.post(f"/api/v1/certificates/{cert['id']}/revoke", json={"reason": "Fraud"})
        body = res.get_json()
        assert body["status"] == "revoked"
        assert body["revoked_reason"] == "Fraud"
        assert body["revoked_at"] is not None
        res = client.post(f"/api/v1/certificates/{cert['id']}/revoke", json={"reason": "Again"})
        assert res.status_code == 409


# ═════════════════════════════════════════════════════════════════════════════
# Listing, export, email
# ═════════════════════════════════════════════════════════════════════════════


class TestListingAndExport:
    def test_filters(self, client, course_type):
        _make_certificate(client, course_type.id, issue_date="2030-06-12")
        old = _make_certificate(client, course_type.id, issue_date="2020-01-10",
                                candidate_name="Old Timer")
        items = client.get("/api/v1/certificates").get_json()["items"]
        assert [c["issue_date"] for c in items] == ["2030-06-12", "2020-01-10"]

        expired = client.get("/api/v1/certificates?expiry_status=expired").get_json()
        assert [c["id"] for c in expired["items"]] == [old["id"]]
        assert expired["items"][0]["expiry_status"] == "expired"

        found = client.get("/api/v1/certificates?search=timer").get_json()
        assert found["total"] == 1
        ranged = client.get("/api/v1/certificates?date_from=2030-01-01").get_json()
        assert ranged["total"] == 1

    def test_invalid_filters(self, client):
        assert client.get("/api/v1/certificates?status=lost").status_code == 400
        assert client.get("/api/v1/certificates?expiry_status=soonish").status_code == 400

    def test_export_xlsx(self, client, course_type):
        cert = _make_certificate(client, course_type.id)
        res = client.get("/api/v1/certificates/export.xlsx")
        assert res.status_code == 200
        assert res.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        assert "attachment" in res.headers["Content-Disposition"]

        ws = load_workbook(io.BytesIO(res.data)).active
        assert ws["A1"].value == "Certificate Register"
        assert ws["A4"].value == "Certificate No."
        assert ws["A5"].value == cert["certificate_number"]
        assert ws["B5"].value == "Jo Bloggs"


class TestSendCertificate:
    def test_send_queues_email(self, client, course_type, core_templates):
        cert = _make_certificate(client, course_type.id)
        res = client.post(f"/api/v1/certificates/{cert['id']}/send")
        assert res.status_code == 200
        assert res.get_json()["sent_at"] is not None

        entry = EmailQueueEntry.query.filter_by(template_key="send_certificate_candidate").one()
        assert entry.recipient_email == "jo@acme.com"
        assert entry.priority == 3
        assert entry.template_data["verify_url"].endswith(
            f"/api/v1/public/certificates/verify/{cert['certificate_number']}"
        )
        assert entry.template_data["expiry_date"] == "12/06/2033"

    def test_configured_verify_base_url(self, app, client, course_type, core_templates, monkeypatch):
        monkeypatch.setitem(app.config, "CERTIFICATE_VERIFY_BASE_URL", "https://verify.example.com/c/")
        cert = _make_certificate(client, course_type.id)
        client.post(f"/api/v1/certificates/{cert['id']}/send")
        entry = EmailQueueEntry.query.one()
        assert entry.template_data["verify_url"] == (
            f"https://verify.example.com/c/{cert['certificate_number']}"
        )

    def test_no_email_address(self, client, course_type, core_templates):
        cert = _make_certificate(client, course_type.id, email=None)
        assert client.post(f"/api/v1/certificates/{cert['id']}/send").status_code == 422

    def test_revoked_not_sent(self, client, course_type, core_templates):
        cert = _make_certificate(client, course_type.id)
        client.post(f"/api/v1/certificates/{cert['id']}/revoke", json={"reason": "Error"})
        assert client.post(f"/api/v1/certificates/{cert['id']}/send").status_code == 422


# ═════════════════════════════════════════════════════════════════════════════
# Public verification
# ═════════════════════════════════════════════════════════════════════════════


class TestVerification:
    def _verify(self, client, number, **headers):
        return client.get(f"/api/v1/public/certificates/verify/{number}", headers=headers)

    def test_valid(self, client, course_type):
        cert = _make_certificate(client, course_type.id)
        res = self._verify(client, cert["certificate_number"].lower())
        assert res.status_code == 200
        body = res.get_json()
        assert body["result"] == "valid"
        assert body["certificate"]["candidate_name"] == "Jo Bloggs"
        assert body["certificate"]["course_name"] == "Forklift Truck"
        assert "candidate_email" not in body["certificate"]

    def test_unknown_number(self, client):
        body = self._verify(client, "NOPE-2030-00001").get_json()
        assert body["result"] == "invalid"
        assert body["certificate"] is None

    def test_revoked(self, client, course_type):
        cert = _make_certificate(client, course_type.id)
        client.post(f"/api/v1/certificates/{cert['id']}/revoke", json={"reason": "Fraud"})
        assert self._verify(client, cert["certificate_number"]).get_json()["result"] == "revoked"

    def test_expired(self, client, course_type):
        cert = _make_certificate(client, course_type.id, issue_date="2020-01-10")
        assert self._verify(client, cert["certificate_number"]).get_json()["result"] == "expired"

    def test_every_lookup_logged(self, client, course_type):
        cert = _make_certificate(client, course_type.id)
        self._verify(client, cert["certificate_number"])
        self._verify(client, "NOPE-1")

        log = client.get("/api/v1/certificates/verification-log").get_json()
        assert log["total"] == 2
        by_number = {row["certificate_number"]: row for row in log["items"]}
        assert by_number[cert["certificate_number"]]["ip_address"] == "127.0.0.1"
        assert by_number[cert["certificate_number"]]["result"] == "valid"
        assert by_number["NOPE-1"]["result"] == "invalid"

        filtered = client.get(
            f"/api/v1/certificates/verification-log?certificate_number={cert['certificate_number']}"
        ).get_json()
        assert filtered["total"] == 1

    def test_forwarded_for_ignored_without_trusted_proxy(self, client):
        self._verify(client, "NOPE-1", **{"X-Forwarded-For": "203.0.113.9"})
        row = client.get("/api/v1/certificates/verification-log").get_json()["items"][0]
        assert row["ip_address"] == "127.0.0.1"

    def test_forwarded_for_used_behind_trusted_proxy(self, app, client, monkeypatch):
        monkeypatch.setattr(app, "wsgi_app", app.wsgi_app)
        monkeypatch.setitem(app.config, "PROXY_FIX_X_FOR", 1)
        init_proxy_fix(app)

        # Only the hop appended by our own proxy is trusted
        self._verify(client, "NOPE-1", **{"X-Forwarded-For": "198.51.100.7, 203.0.113.9"})
        row = client.get("/api/v1/certificates/verification-log").get_json()["items"][0]
        assert row["ip_address"] == "203.0.113.9"
