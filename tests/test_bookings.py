"""
Booking & candidate API tests.

Covers:
    - Create with client snapshot, default location, availability warnings
    - Trainer notifications queued through the email queue
    - Move / cancel / delete, calendar window listing
    - Candidate CRUD
"""

from backoffice.models.email import EmailQueueEntry


def _make_booking(client, **kw):
    payload = {"title": "Counterbalance novice", "booking_date": "2030-05-06", "num_days": 2}
    payload.update(kw)
    res = client.post("/api/v1/bookings", json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


class TestCreateBooking:
    def test_create_minimal(self, client):
        data = _make_booking(client)
        assert data["title"] == "Counterbalance novice"
        assert data["end_date"] == "2030-05-07"
        assert data["start_time"] == "09:00"
        assert data["status"] == "confirmed"
        assert data["availability_warnings"] == []
        assert data["candidates"] == []

    def test_title_and_date_required(self, client):
        assert client.post("/api/v1/bookings", json={"booking_date": "2030-05-06"}).status_code == 422
        assert client.post("/api/v1/bookings", json={"title": "X"}).status_code == 422

    def test_bad_date_is_bad_request(self, client):
        res = client.post("/api/v1/bookings", json={"title": "X", "booking_date": "someday"})
        assert res.status_code == 400

    def test_num_days_limit(self, client):
        res = client.post("/api/v1/bookings",
                          json={"title": "X", "booking_date": "2030-05-06", "num_days": 6})
        assert res.status_code == 422

    def test_invalid_status(self, client):
        res = client.post("/api/v1/bookings",
                          json={"title": "X", "booking_date": "2030-05-06", "status": "maybe"})
        assert res.status_code == 422

    def test_client_snapshot_and_default_location(self, client, customer):
        loc = client.post(f"/api/v1/clients/{customer.id}/locations",
                          json={"location_name": "Depot", "town": "Derby"}).get_json()
        data = _make_booking(client, client_id=customer.id)
        assert data["client_name"] == "Acme Logistics"
        assert data["client_contact_name"] == "Pat Jones"
        assert data["client_telephone"] == "01234 567890"
        assert data["location_id"] == loc["id"]
        assert data["location"] == "Depot, Derby"

    def test_explicit_contact_wins(self, client, customer):
        data = _make_booking(client, client_id=customer.id, client_contact_name="Site Manager")
        assert data["client_contact_name"] == "Site Manager"

    def test_location_requires_client(self, client, customer):
        loc = client.post(f"/api/v1/clients/{customer.id}/locations",
                          json={"location_name": "Depot"}).get_json()
        res = client.post("/api/v1/bookings", json={
            "title": "X", "booking_date": "2030-05-06", "location_id": loc["id"],
        })
        assert res.status_code == 422

    def test_suspended_trainer_rejected(self, client, trainer):
        client.post(f"/api/v1/trainers/{trainer.id}/suspend")
        res = client.post("/api/v1/bookings", json={
            "title": "X", "booking_date": "2030-05-06", "trainer_id": trainer.id,
        })
        assert res.status_code == 422

    def test_availability_warnings(self, client, trainer):
        client.post(f"/api/v1/trainers/{trainer.id}/availability",
                    json={"date": "2030-05-07", "reason": "Dentist"})
        data = _make_booking(client, trainer_id=trainer.id)
        assert data["availability_warnings"] == [
            {"date": "2030-05-07", "status": "unavailable", "reason": "Dentist"},
        ]

    def test_trainer_notified(self, client, trainer, core_templates):
        _make_booking(client, trainer_id=trainer.id)
        entries = EmailQueueEntry.query.all()
        assert len(entries) == 1
        assert entries[0].template_key == "trainer_new_booking"
        assert entries[0].recipient_email == "sam.trainer@example.com"
        assert entries[0].template_data["booking_date"] == "06/05/2030"

    def test_no_templates_no_notification(self, client, trainer):
        _make_booking(client, trainer_id=trainer.id)
        assert EmailQueueEntry.query.count() == 0


class TestListBookings:
    def test_window_includes_overlapping_multi_day(self, client):
        _make_booking(client, booking_date="2030-05-04", num_days=3)
        _make_booking(client, title="Later", booking_date="2030-05-20", num_days=1)
        res = client.get("/api/v1/bookings?date_from=2030-05-06&date_to=2030-05-10").get_json()
        assert [b["booking_date"] for b in res["items"]] == ["2030-05-04"]

    def test_window_excludes_bookings_ending_before(self, client):
        _make_booking(client, booking_date="2030-05-01", num_days=2)
        res = client.get("/api/v1/bookings?date_from=2030-05-06&date_to=2030-05-10").get_json()
        assert res["total"] == 0

    def test_cancelled_hidden_by_default(self, client):
        b = _make_booking(client)
        client.post(f"/api/v1/bookings/{b['id']}/cancel")
        assert client.get("/api/v1/bookings").get_json()["total"] == 0
        assert client.get("/api/v1/bookings?include_cancelled=true").get_json()["total"] == 1
        assert client.get("/api/v1/bookings?status=cancelled").get_json()["total"] == 1

    def test_filter_by_trainer(self, client, trainer):
        _make_booking(client, trainer_id=trainer.id)
        _make_booking(client, title="Unassigned")
        res = client.get(f"/api/v1/bookings?trainer_id={trainer.id}").get_json()
        assert [b["trainer_name"] for b in res["items"]] == ["Sam Trainer"]


class TestMoveCancelDelete:
    def test_move_date(self, client, trainer, core_templates):
        b = _make_booking(client, trainer_id=trainer.id)
        res = client.post(f"/api/v1/bookings/{b['id']}/move", json={"booking_date": "2030-05-13"})
        assert res.status_code == 200
        assert res.get_json()["booking_date"] == "2030-05-13"
        keys = [e.template_key for e in EmailQueueEntry.query.order_by(EmailQueueEntry.id)]
        assert keys == ["trainer_new_booking", "trainer_booking_moved"]

    def test_move_to_other_trainer_notifies_both(self, client, trainer, core_templates):
        other = client.post("/api/v1/trainers",
                            json={"name": "Kim Other", "email": "kim@trainers.co.uk"}).get_json()
        b = _make_booking(client, trainer_id=trainer.id)
        res = client.post(f"/api/v1/bookings/{b['id']}/move", json={"trainer_id": other["id"]})
        assert res.get_json()["trainer_name"] == "Kim Other"
        sent_to = {(e.template_key, e.recipient_email) for e in EmailQueueEntry.query.all()}
        assert ("trainer_booking_cancelled", "sam.trainer@example.com") in sent_to
        assert ("trainer_booking_moved", "kim@trainers.co.uk") in sent_to

    def test_move_returns_warnings(self, client, trainer):
        client.post(f"/api/v1/trainers/{trainer.id}/availability", json={"date": "2030-05-14"})
        b = _make_booking(client, trainer_id=trainer.id)
        res = client.post(f"/api/v1/bookings/{b['id']}/move", json={"booking_date": "2030-05-13"})
        assert res.get_json()["availability_warnings"][0]["date"] == "2030-05-14"

    def test_move_requires_target(self, client):
        b = _make_booking(client)
        assert client.post(f"/api/v1/bookings/{b['id']}/move", json={}).status_code == 422

    def test_cancelled_cannot_move(self, client):
        b = _make_booking(client)
        client.post(f"/api/v1/bookings/{b['id']}/cancel")
        res = client.post(f"/api/v1/bookings/{b['id']}/move", json={"booking_date": "2030-06-01"})
        assert res.status_code == 422

    def test_cancel_twice_conflicts(self, client):
        b = _make_booking(client)
        assert client.post(f"/api/v1/bookings/{b['id']}/cancel").get_json()["status"] == "cancelled"
        assert client.post(f"/api/v1/bookings/{b['id']}/cancel").status_code == 409

    def test_update(self, client):
        b = _make_booking(client)
        res = client.put(f"/api/v1/bookings/{b['id']}",
                         json={"notes": "Bring PPE", "start_time": "08:30", "num_days": 3})
        body = res.get_json()
        assert body["notes"] == "Bring PPE"
        assert body["start_time"] == "08:30"
        assert body["end_date"] == "2030-05-08"

    def test_update_notifies_trainer_of_changes(self, client, trainer, core_templates):
        b = _make_booking(client, trainer_id=trainer.id)
        client.put(f"/api/v1/bookings/{b['id']}", json={"start_time": "08:30", "location": "Bay 4"})
        entry = EmailQueueEntry.query.filter_by(template_key="trainer_booking_updated").one()
        assert entry.recipient_email == "sam.trainer@example.com"
        assert entry.priority == 4
        assert entry.template_data["changes_summary"] == (
            "Start time: 09:00 to 08:30; Location: none to Bay 4"
        )

    def test_status_and_days_change_notified(self, client, trainer, core_templates):
        b = _make_booking(client, trainer_id=trainer.id, status="provisional")
        client.put(f"/api/v1/bookings/{b['id']}", json={"status": "confirmed", "num_days": 3})
        entry = EmailQueueEntry.query.filter_by(template_key="trainer_booking_updated").one()
        assert entry.template_data["changes_summary"] == (
            "Days: 2 to 3; Status: provisional to confirmed"
        )

    def test_notes_change_is_not_notified(self, client, trainer, core_templates):
        b = _make_booking(client, trainer_id=trainer.id)
        client.put(f"/api/v1/bookings/{b['id']}", json={"notes": "Bring PPE"})
        assert EmailQueueEntry.query.filter_by(template_key="trainer_booking_updated").count() == 0

    def test_opted_out_trainer_gets_no_booking_emails(self, client, trainer, core_templates):
        client.put(f"/api/v1/trainers/{trainer.id}", json={"receive_booking_notifications": False})
        b = _make_booking(client, trainer_id=trainer.id)
        client.put(f"/api/v1/bookings/{b['id']}", json={"num_days": 3})
        client.post(f"/api/v1/bookings/{b['id']}/cancel")
        assert EmailQueueEntry.query.count() == 0

    def test_in_centre_false_string(self, client):
        b = _make_booking(client, in_centre="false")
        assert b["in_centre"] is False
        res = client.put(f"/api/v1/bookings/{b['id']}", json={"in_centre": "maybe"})
        assert res.status_code == 422

    def test_in_centre_filter(self, client):
        _make_booking(client, title="On site")
        _make_booking(client, title="At the centre", in_centre=True)
        rows = client.get("/api/v1/bookings?in_centre=true").get_json()["items"]
        assert [r["title"] for r in rows] == ["At the centre"]
        assert client.get("/api/v1/bookings").get_json()["total"] == 2

    def test_delete(self, client):
        b = _make_booking(client)
        client.post(f"/api/v1/bookings/{b['id']}/candidates", json={"candidate_name": "Jo"})
        assert client.delete(f"/api/v1/bookings/{b['id']}").status_code == 200
        assert client.get(f"/api/v1/bookings/{b['id']}").status_code == 404


class TestCandidates:
    def test_add_and_list(self, client, customer):
        b = _make_booking(client, client_id=customer.id)
        res = client.post(f"/api/v1/bookings/{b['id']}/candidates", json={
            "candidate_name": "Jo Bloggs", "email": "jo@acme.com", "outstanding_balance": "45.50",
        })
        assert res.status_code == 201
        cand = res.get_json()
        assert cand["client_id"] == customer.id
        assert cand["outstanding_balance"] == 45.5
        assert cand["passed"] is False

        listed = client.get(f"/api/v1/bookings/{b['id']}/candidates").get_json()
        assert listed["total"] == 1
        assert client.get(f"/api/v1/bookings/{b['id']}").get_json()["candidate_count"] == 1

    def test_name_required(self, client):
        b = _make_booking(client)
        res = client.post(f"/api/v1/bookings/{b['id']}/candidates", json={"email": "jo@acme.com"})
        assert res.status_code == 422

    def test_update_passed(self, client):
        b = _make_booking(client)
        cand = client.post(f"/api/v1/bookings/{b['id']}/candidates",
                           json={"candidate_name": "Jo"}).get_json()
        res = client.put(f"/api/v1/bookings/{b['id']}/candidates/{cand['id']}",
                         json={"passed": True, "course_data": {"truck_type": "B1"}})
        body = res.get_json()
        assert body["passed"] is True
        assert body["course_data"] == {"truck_type": "B1"}

    def test_passed_false_string_stays_false(self, client):
        b = _make_booking(client)
        cand = client.post(f"/api/v1/bookings/{b['id']}/candidates",
                           json={"candidate_name": "Jo", "passed": "false", "paid": "yes"}).get_json()
        assert cand["passed"] is False
        assert cand["paid"] is True

    def test_candidate_of_other_booking_is_404(self, client):
        a = _make_booking(client)
        b = _make_booking(client, title="Other")
        cand = client.post(f"/api/v1/bookings/{a['id']}/candidates",
                           json={"candidate_name": "Jo"}).get_json()
        res = client.delete(f"/api/v1/bookings/{b['id']}/candidates/{cand['id']}")
        assert res.status_code == 404

    def test_remove(self, client):
        b = _make_booking(client)
        cand = client.post(f"/api/v1/bookings/{b['id']}/candidates",
                           json={"candidate_name": "Jo"}).get_json()
        res = client.delete(f"/api/v1/bookings/{b['id']}/candidates/{cand['id']}")
        assert res.status_code == 200
        assert client.get(f"/api/v1/bookings/{b['id']}/candidates").get_json()["total"] == 0
