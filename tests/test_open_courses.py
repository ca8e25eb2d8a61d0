"""
Open course tests.

Covers:
    - Venues and sessions (create, duplicate, cancel, delete rules, week view)
    - Delegates: add, cancel/reinstate, transfer, delete
    - Capacity recalculation and fill-level alerts
    - Register, attendance, DVSA details, trainer declaration
"""

from backoffice.models.email import EmailQueueEntry
from backoffice.models.open_course import CapacityAlert

BASE = "/api/v1/open-courses"


def _make_session(client, **kw):
    payload = {"event_title": "Driver CPC: Safe Loading", "session_date": "2030-06-10",
               "capacity": 4, "status": "confirmed"}
    payload.update(kw)
    res = client.post(f"{BASE}/sessions", json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _add_delegate(client, session_id, name="Chris Driver", **kw):
    payload = {"delegate_name": name}
    payload.update(kw)
    res = client.post(f"{BASE}/sessions/{session_id}/delegates", json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _session(client, session_id):
    return client.get(f"{BASE}/sessions/{session_id}").get_json()


def _alert_types(session_id):
    rows = CapacityAlert.query.filter_by(session_id=session_id).order_by(CapacityAlert.id).all()
    return [a.alert_type for a in rows]


# ═════════════════════════════════════════════════════════════════════════════
# Venues & sessions
# ═════════════════════════════════════════════════════════════════════════════


class TestVenues:
    def test_create_and_deactivate(self, client):
        res = client.post(f"{BASE}/venues", json={"name": "Leeds Training Centre", "town": "Leeds"})
        assert res.status_code == 201
        venue = res.get_json()
        assert venue["is_active"] is True

        res = client.post(f"{BASE}/venues/{venue['id']}/deactivate")
        assert res.get_json()["is_active"] is False
        active = client.get(f"{BASE}/venues?active=true").get_json()
        assert active["total"] == 0

    def test_name_required(self, client):
        assert client.post(f"{BASE}/venues", json={"town": "Leeds"}).status_code == 422


class TestSessions:
    def test_create_defaults(self, client):
        res = client.post(f"{BASE}/sessions",
                          json={"event_title": "Manual Handling", "session_date": "2030-06-10"})
        data = res.get_json()
        assert res.status_code == 201
        assert data["capacity"] == 12
        assert data["available_spaces"] == 12
        assert data["status"] == "draft"

    def test_required_fields(self, client):
        res = client.post(f"{BASE}/sessions", json={"capacity": 5})
        assert res.status_code == 422
        assert set(res.get_json()["details"]) == {"event_title", "session_date"}

    def test_end_before_start_rejected(self, client):
        res = client.post(f"{BASE}/sessions", json={
            "event_title": "X", "session_date": "2030-06-10", "end_date": "2030-06-09",
        })
        assert res.status_code == 422

    def test_suspended_trainer_rejected(self, client, trainer):
        client.post(f"/api/v1/trainers/{trainer.id}/suspend")
        res = client.post(f"{BASE}/sessions", json={
            "event_title": "X", "session_date": "2030-06-10", "trainer_id": trainer.id,
        })
        assert res.status_code == 422

    def test_week_view(self, client):
        _make_session(client, session_date="2030-06-10")
        _make_session(client, session_date="2030-06-16")
        _make_session(client, session_date="2030-06-17")
        res = client.get(f"{BASE}/sessions/week?start=2030-06-10").get_json()
        assert [s["session_date"] for s in res["items"]] == ["2030-06-10", "2030-06-16"]

    def test_week_view_requires_start(self, client):
        assert client.get(f"{BASE}/sessions/week").status_code == 400

    def test_list_status_filter(self, client):
        _make_session(client)
        _make_session(client, status="draft")
        res = client.get(f"{BASE}/sessions?status=draft").get_json()
        assert res["total"] == 1
        assert client.get(f"{BASE}/sessions?status=open").status_code == 400

    def test_duplicate(self, client):
        s = _make_session(client, end_date="2030-06-11", price="95.00")
        _add_delegate(client, s["id"])
        res = client.post(f"{BASE}/sessions/{s['id']}/duplicate", json={"session_date": "2030-07-01"})
        assert res.status_code == 201
        copy = res.get_json()
        assert copy["session_date"] == "2030-07-01"
        assert copy["end_date"] == "2030-07-02"
        assert copy["status"] == "draft"
        assert copy["available_spaces"] == copy["capacity"]
        assert copy["price"] == 95.0

    def test_cancel_twice_conflicts(self, client):
        s = _make_session(client)
        assert client.post(f"{BASE}/sessions/{s['id']}/cancel").get_json()["status"] == "cancelled"
        assert client.post(f"{BASE}/sessions/{s['id']}/cancel").status_code == 409

    def test_delete_with_delegates_refused(self, client):
        s = _make_session(client)
        d = _add_delegate(client, s["id"])
        client.post(f"{BASE}/delegates/{d['id']}/cancel")
        assert client.delete(f"{BASE}/sessions/{s['id']}").status_code == 409

    def test_delete_empty_session(self, client):
        s = _make_session(client)
        assert client.delete(f"{BASE}/sessions/{s['id']}").status_code == 200
        assert client.get(f"{BASE}/sessions/{s['id']}").status_code == 404

    def test_declaration(self, client):
        s = _make_session(client)
        assert client.post(f"{BASE}/sessions/{s['id']}/declaration", json={}).status_code == 422
        res = client.post(f"{BASE}/sessions/{s['id']}/declaration", json={"signed_by": "Sam Trainer"})
        body = res.get_json()
        assert body["trainer_declaration_signed"] is True
        assert body["trainer_declaration_signed_by"] == "Sam Trainer"
        assert body["trainer_declaration_signed_at"] is not None
        res = client.delete(f"{BASE}/sessions/{s['id']}/declaration")
        assert res.get_json()["trainer_declaration_signed"] is False

    def test_trainer_assignment_notified(self, client, trainer, core_templates):
        s = _make_session(client, start_time="09:00", end_time="16:30")
        _add_delegate(client, s["id"])
        client.put(f"{BASE}/sessions/{s['id']}", json={"trainer_id": trainer.id})
        client.put(f"{BASE}/sessions/{s['id']}", json={"notes": "Room 2"})
        entry = EmailQueueEntry.query.one()
        assert entry.template_key == "trainer_open_course_assignment"
        assert entry.recipient_email == "sam.trainer@example.com"
        assert entry.template_data["session_date"] == "10/06/2030"
        assert entry.template_data["delegate_count"] == 1

    def test_no_assignment_email_for_cancelled_session(self, client, trainer, core_templates):
        _make_session(client, status="cancelled", trainer_id=trainer.id)
        assert EmailQueueEntry.query.count() == 0

    def test_is_virtual_parsed(self, client):
        s = _make_session(client, is_virtual="false")
        assert s["is_virtual"] is False


# ═════════════════════════════════════════════════════════════════════════════
# Capacity
# ═════════════════════════════════════════════════════════════════════════════


class TestCapacity:
    def test_spaces_track_active_delegates(self, client):
        s = _make_session(client)
        d = _add_delegate(client, s["id"])
        _add_delegate(client, s["id"], name="Dana Driver")
        assert _session(client, s["id"])["available_spaces"] == 2

        client.post(f"{BASE}/delegates/{d['id']}/cancel", json={"reason": "Ill"})
        detail = _session(client, s["id"])
        assert detail["available_spaces"] == 3
        assert detail["delegate_count"] == 1
        assert detail["cancelled_delegate_count"] == 1

    def test_low_capacity_then_overbooked(self, client):
        s = _make_session(client, capacity=4)
        for name in ("A", "B", "C"):
            _add_delegate(client, s["id"], name=name)
        assert _alert_types(s["id"]) == ["low_capacity"]
        _add_delegate(client, s["id"], name="D")
        assert _alert_types(s["id"]) == ["low_capacity", "overbooked"]

    def test_full_alert(self, client):
        s = _make_session(client, capacity=10)
        for i in range(9):
            _add_delegate(client, s["id"], name=f"Delegate {i}")
        assert _alert_types(s["id"]) == ["low_capacity", "full"]

    def test_no_duplicate_unacknowledged_alert(self, client):
        s = _make_session(client, capacity=4)
        for name in ("A", "B", "C"):
            _add_delegate(client, s["id"], name=name)
        client.post(f"{BASE}/sessions/{s['id']}/recalculate")
        assert _alert_types(s["id"]) == ["low_capacity"]

    def test_acknowledged_alert_can_fire_again(self, client):
        s = _make_session(client, capacity=4)
        for name in ("A", "B", "C"):
            _add_delegate(client, s["id"], name=name)
        alert = client.get(f"{BASE}/alerts?session_id={s['id']}").get_json()["items"][0]
        res = client.post(f"{BASE}/alerts/{alert['id']}/acknowledge", json={"acknowledged_by": "Ops"})
        assert res.get_json()["acknowledged"] is True
        assert res.get_json()["acknowledged_by"] == "Ops"
        assert client.post(f"{BASE}/alerts/{alert['id']}/acknowledge").status_code == 409

        client.post(f"{BASE}/sessions/{s['id']}/recalculate")
        assert _alert_types(s["id"]) == ["low_capacity", "low_capacity"]

    def test_overbooking_allowed(self, client):
        s = _make_session(client, capacity=1)
        _add_delegate(client, s["id"], name="A")
        _add_delegate(client, s["id"], name="B")
        assert _session(client, s["id"])["available_spaces"] == -1

    def test_capacity_change_recalculates(self, client):
        s = _make_session(client, capacity=10)
        _add_delegate(client, s["id"])
        res = client.put(f"{BASE}/sessions/{s['id']}", json={"capacity": 1})
        assert res.get_json()["available_spaces"] == 0
        assert _alert_types(s["id"]) == ["overbooked"]

    def test_zero_capacity(self, client):
        s = _make_session(client, capacity=0)
        assert _alert_types(s["id"]) == []
        _add_delegate(client, s["id"])
        assert _alert_types(s["id"]) == ["overbooked"]


# ═════════════════════════════════════════════════════════════════════════════
# Delegates
# ═════════════════════════════════════════════════════════════════════════════


class TestDelegates:
    def test_add_validates(self, client):
        s = _make_session(client)
        assert client.post(f"{BASE}/sessions/{s['id']}/delegates", json={}).status_code == 422
        res = client.post(f"{BASE}/sessions/{s['id']}/delegates",
                          json={"delegate_name": "A", "booking_source": "fax"})
        assert res.status_code == 422

    def test_cannot_add_to_cancelled_session(self, client):
        s = _make_session(client)
        client.post(f"{BASE}/sessions/{s['id']}/cancel")
        res = client.post(f"{BASE}/sessions/{s['id']}/delegates", json={"delegate_name": "A"})
        assert res.status_code == 422

    def test_cancel_and_reinstate(self, client):
        s = _make_session(client)
        d = _add_delegate(client, s["id"])
        res = client.post(f"{BASE}/delegates/{d['id']}/cancel", json={"reason": "Changed plans"})
        assert res.get_json()["cancelled"] is True
        assert res.get_json()["cancellation_reason"] == "Changed plans"
        assert client.post(f"{BASE}/delegates/{d['id']}/cancel").status_code == 409

        res = client.post(f"{BASE}/delegates/{d['id']}/reinstate")
        assert res.get_json()["cancelled"] is False
        assert client.post(f"{BASE}/delegates/{d['id']}/reinstate").status_code == 409

    def test_reinstate_on_cancelled_session_refused(self, client):
        s = _make_session(client)
        d = _add_delegate(client, s["id"])
        client.post(f"{BASE}/delegates/{d['id']}/cancel")
        client.post(f"{BASE}/sessions/{s['id']}/cancel")
        assert client.post(f"{BASE}/delegates/{d['id']}/reinstate").status_code == 422

    def test_transfer(self, client):
        source = _make_session(client)
        target = _make_session(client, session_date="2030-06-20")
        d = _add_delegate(client, source["id"])
        client.put(f"{BASE}/delegates/{d['id']}/attendance", json={"attendance": "absent"})

        res = client.post(f"{BASE}/delegates/{d['id']}/transfer", json={"session_id": target["id"]})
        assert res.status_code == 200
        body = res.get_json()
        assert body["session_id"] == target["id"]
        assert body["session"]["session_date"] == "2030-06-20"
        assert body["attendance_detail"] is None
        assert _session(client, source["id"])["available_spaces"] == 4
        assert _session(client, target["id"])["available_spaces"] == 3

    def test_transfer_rules(self, client):
        source = _make_session(client)
        target = _make_session(client, session_date="2030-06-20")
        d = _add_delegate(client, source["id"])
        assert client.post(f"{BASE}/delegates/{d['id']}/transfer", json={}).status_code == 400
        res = client.post(f"{BASE}/delegates/{d['id']}/transfer", json={"session_id": source["id"]})
        assert res.status_code == 422
        client.post(f"{BASE}/sessions/{target['id']}/cancel")
        res = client.post(f"{BASE}/delegates/{d['id']}/transfer", json={"session_id": target["id"]})
        assert res.status_code == 422

    def test_delete(self, client):
        s = _make_session(client)
        d = _add_delegate(client, s["id"])
        assert client.delete(f"{BASE}/delegates/{d['id']}").status_code == 200
        assert _session(client, s["id"])["available_spaces"] == 4

    def test_cross_session_filters(self, client):
        a = _make_session(client, session_date="2030-06-10")
        b = _make_session(client, session_date="2030-06-20")
        d1 = _add_delegate(client, a["id"], name="Alice", delegate_company="Acme")
        _add_delegate(client, b["id"], name="Bob")
        client.put(f"{BASE}/delegates/{d1['id']}/attendance", json={"attendance": "late"})

        assert client.get(f"{BASE}/delegates").get_json()["total"] == 2
        attended = client.get(f"{BASE}/delegates?attendance=attended").get_json()
        assert [d["delegate_name"] for d in attended["items"]] == ["Alice"]
        pending = client.get(f"{BASE}/delegates?certificate=pending").get_json()
        assert [d["delegate_name"] for d in pending["items"]] == ["Alice"]
        not_applicable = client.get(f"{BASE}/delegates?certificate=not_applicable").get_json()
        assert [d["delegate_name"] for d in not_applicable["items"]] == ["Bob"]
        windowed = client.get(f"{BASE}/delegates?date_from=2030-06-15").get_json()
        assert [d["delegate_name"] for d in windowed["items"]] == ["Bob"]
        searched = client.get(f"{BASE}/delegates?search=acme").get_json()
        assert searched["total"] == 1
        assert client.get(f"{BASE}/delegates?attendance=maybe").status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# Register, attendance, DVSA
# ═════════════════════════════════════════════════════════════════════════════


class TestRegister:
    def test_register_summary(self, client):
        s = _make_session(client)
        a = _add_delegate(client, s["id"], name="A")
        b = _add_delegate(client, s["id"], name="B")
        _add_delegate(client, s["id"], name="C")
        cancelled = _add_delegate(client, s["id"], name="D")
        client.put(f"{BASE}/delegates/{a['id']}/attendance", json={"attendance": "attended"})
        client.put(f"{BASE}/delegates/{b['id']}/attendance", json={"attendance": "absent"})
        client.post(f"{BASE}/delegates/{cancelled['id']}/cancel")

        reg = client.get(f"{BASE}/sessions/{s['id']}/register").get_json()
        assert reg["summary"] == {"total": 3, "present": 1, "absent": 1, "pending": 1}
        assert [d["delegate_name"] for d in reg["delegates"]] == ["A", "B", "C"]

    def test_attendance_marking(self, client):
        s = _make_session(client)
        d = _add_delegate(client, s["id"])
        res = client.put(f"{BASE}/delegates/{d['id']}/attendance",
                         json={"attendance": "left_early", "marked_by": "Sam"})
        body = res.get_json()
        assert body["attendance_detail"] == "left_early"
        assert body["attendance_marked_by"] == "Sam"
        assert body["attendance_marked_at"] is not None

        res = client.put(f"{BASE}/delegates/{d['id']}/attendance", json={"attendance": None})
        assert res.get_json()["attendance_marked_at"] is None

    def test_attendance_validation(self, client):
        s = _make_session(client)
        d = _add_delegate(client, s["id"])
        assert client.put(f"{BASE}/delegates/{d['id']}/attendance", json={}).status_code == 400
        res = client.put(f"{BASE}/delegates/{d['id']}/attendance", json={"attendance": "asleep"})
        assert res.status_code == 422
        client.post(f"{BASE}/delegates/{d['id']}/cancel")
        res = client.put(f"{BASE}/delegates/{d['id']}/attendance", json={"attendance": "attended"})
        assert res.status_code == 422

    def test_dvsa_details(self, client):
        s = _make_session(client)
        d = _add_delegate(client, s["id"])
        res = client.put(f"{BASE}/delegates/{d['id']}/dvsa", json={
            "licence_number": " morga753116sm9ij ", "licence_category": "CE",
            "id_type": "DL", "dvsa_uploaded": True,
        })
        body = res.get_json()
        assert body["licence_number"] == "MORGA753116SM9IJ"
        assert body["dvsa_uploaded"] is True
        assert body["dvsa_uploaded_at"] is not None

        res = client.put(f"{BASE}/delegates/{d['id']}/dvsa", json={"dvsa_uploaded": False})
        assert res.get_json()["dvsa_uploaded_at"] is None
        res = client.put(f"{BASE}/delegates/{d['id']}/dvsa", json={"licence_category": "Z"})
        assert res.status_code == 422
