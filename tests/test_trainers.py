"""Trainer API tests: CRUD, suspension, ordering, notifications, insurance reminders."""

from datetime import date

import pytest

from backoffice.core.exceptions import ValidationError
from backoffice.models import db
from backoffice.models.email import EmailQueueEntry
from backoffice.models.trainer import Trainer
from backoffice.services import trainer_service


def _make_trainer(client, **kw):
    payload = {"name": "Alex Morgan", "email": "alex@trainers.co.uk", "day_rate": 250}
    payload.update(kw)
    res = client.post("/api/v1/trainers", json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


class TestTrainerCrud:
    def test_create_trainer(self, client):
        data = _make_trainer(client)
        assert data["name"] == "Alex Morgan"
        assert data["day_rate"] == 250.0
        assert data["active"] is True
        assert data["suspended"] is False

    def test_new_trainers_appended_to_order(self, client):
        first = _make_trainer(client)
        second = _make_trainer(client, name="Bea Lane", email="bea@trainers.co.uk")
        assert second["display_order"] == first["display_order"] + 1

    def test_name_required(self, client):
        res = client.post("/api/v1/trainers", json={"email": "x@trainers.co.uk"})
        assert res.status_code == 422

    def test_negative_day_rate_rejected(self, client):
        res = client.post("/api/v1/trainers", json={"name": "Cheap", "day_rate": -5})
        assert res.status_code == 422
        assert res.get_json()["details"]["day_rate"] == "invalid"

    def test_duplicate_user_id_conflicts(self, client):
        _make_trainer(client, user_id="auth0|123")
        res = client.post("/api/v1/trainers", json={"name": "Clone", "user_id": "auth0|123"})
        assert res.status_code == 409

    def test_update(self, client):
        t = _make_trainer(client)
        res = client.put(f"/api/v1/trainers/{t['id']}", json={"town": "Bristol", "active": False})
        assert res.status_code == 200
        body = res.get_json()
        assert body["town"] == "Bristol"
        assert body["active"] is False

    def test_get_missing(self, client):
        assert client.get("/api/v1/trainers/404").status_code == 404


class TestSuspension:
    def test_suspended_hidden_from_default_list(self, client):
        t = _make_trainer(client)
        _make_trainer(client, name="Bea Lane", email="bea@trainers.co.uk")
        res = client.post(f"/api/v1/trainers/{t['id']}/suspend")
        assert res.status_code == 200
        assert res.get_json()["suspended"] is True

        listed = client.get("/api/v1/trainers").get_json()
        assert [x["name"] for x in listed["items"]] == ["Bea Lane"]
        everyone = client.get("/api/v1/trainers?include_suspended=true").get_json()
        assert everyone["total"] == 2

    def test_reinstate(self, client):
        t = _make_trainer(client)
        client.post(f"/api/v1/trainers/{t['id']}/suspend")
        res = client.post(f"/api/v1/trainers/{t['id']}/reinstate")
        assert res.get_json()["suspended"] is False
        assert client.get("/api/v1/trainers").get_json()["total"] == 1

    def test_active_filter(self, client):
        _make_trainer(client)
        _make_trainer(client, name="Bea Lane", email="bea@trainers.co.uk", active=False)
        res = client.get("/api/v1/trainers?active=false").get_json()
        assert [x["name"] for x in res["items"]] == ["Bea Lane"]


class TestOrdering:
    def test_reorder(self, client):
        a = _make_trainer(client)
        b = _make_trainer(client, name="Bea Lane", email="bea@trainers.co.uk")
        res = client.put("/api/v1/trainers/order", json={"trainer_ids": [b["id"], a["id"]]})
        assert res.status_code == 200
        names = [x["name"] for x in client.get("/api/v1/trainers").get_json()["items"]]
        assert names == ["Bea Lane", "Alex Morgan"]

    def test_reorder_requires_list(self, client):
        res = client.put("/api/v1/trainers/order", json={"trainer_ids": "1,2"})
        assert res.status_code == 400

    def test_reorder_rejects_duplicates(self, client):
        a = _make_trainer(client)
        res = client.put("/api/v1/trainers/order", json={"trainer_ids": [a["id"], a["id"]]})
        assert res.status_code == 422

    def test_reorder_unknown_trainer(self, client):
        a = _make_trainer(client)
        res = client.put("/api/v1/trainers/order", json={"trainer_ids": [a["id"], 999]})
        assert res.status_code == 404


class TestNotifications:
    def test_welcome_queued_on_create(self, client, core_templates):
        data = _make_trainer(client)
        entries = EmailQueueEntry.query.all()
        assert [(e.template_key, e.recipient_email) for e in entries] == [
            ("trainer_welcome", "alex@trainers.co.uk"),
        ]
        assert entries[0].template_data["trainer_name"] == data["name"]

    def test_no_welcome_without_email(self, client, core_templates):
        _make_trainer(client, email=None)
        assert EmailQueueEntry.query.count() == 0

    def test_opt_out_flag(self, client):
        data = _make_trainer(client, receive_booking_notifications=False)
        assert data["receive_booking_notifications"] is False
        res = client.put(f"/api/v1/trainers/{data['id']}",
                         json={"receive_booking_notifications": "true"})
        assert res.get_json()["receive_booking_notifications"] is True

    def test_active_must_be_boolean(self, client):
        res = client.post("/api/v1/trainers", json={"name": "Flag", "active": "sometimes"})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"active": "invalid"}

    def test_active_false_string_is_false(self, client):
        data = _make_trainer(client, active="false")
        assert data["active"] is False

    def test_opted_out_trainer_not_notified(self, core_templates):
        trainer = Trainer(name="Quiet", email="quiet@trainers.co.uk",
                          receive_booking_notifications=False)
        db.session.add(trainer)
        db.session.commit()
        assert trainer_service.notify_trainer(trainer, "trainer_new_booking", {}) is None
        assert EmailQueueEntry.query.count() == 0


class TestInsuranceReminders:
    def _trainer(self, name, expiry, **kw):
        trainer = Trainer(name=name, email=f"{name.lower()}@trainers.co.uk",
                          insurance_expiry=expiry, **kw)
        db.session.add(trainer)
        db.session.commit()
        return trainer

    def test_reminds_trainers_due_within_window(self, core_templates):
        self._trainer("Soon", date(2030, 6, 20))
        self._trainer("Lapsed", date(2030, 5, 1))
        self._trainer("Later", date(2030, 9, 1))
        self._trainer("Away", date(2030, 6, 10), suspended=True)

        queued = trainer_service.send_insurance_reminders(30, today=date(2030, 6, 1))
        assert queued == 2
        entries = EmailQueueEntry.query.order_by(EmailQueueEntry.id).all()
        assert [e.recipient_email for e in entries] == [
            "lapsed@trainers.co.uk", "soon@trainers.co.uk",
        ]
        assert entries[1].template_key == "insurance_expiry_reminder"
        assert entries[1].template_data["expiry_date"] == "20/06/2030"

    def test_each_expiry_reminded_once(self, client, core_templates):
        trainer = self._trainer("Soon", date(2030, 6, 20))
        assert trainer_service.send_insurance_reminders(30, today=date(2030, 6, 1)) == 1
        assert trainer_service.send_insurance_reminders(30, today=date(2030, 6, 2)) == 0

        client.put(f"/api/v1/trainers/{trainer.id}", json={"insurance_expiry": "2030-06-25"})
        assert trainer_service.send_insurance_reminders(30, today=date(2030, 6, 2)) == 1

    def test_negative_window_rejected(self):
        with pytest.raises(ValidationError):
            trainer_service.send_insurance_reminders(-1)
