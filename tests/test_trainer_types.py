"""
Trainer type tests.

Covers:
    - Trainer type CRUD with trainer counts
    - Assigning and removing types, future-booking guard on removal
    - Course types a trainer may run
    - Qualification enforced on bookings, moves and open-course sessions
"""

from backoffice.models import db
from backoffice.models.certificate import CourseType


def _type(client, name="Forklift Instructor", **kw):
    res = client.post("/api/v1/trainer-types", json={"name": name, **kw})
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _assign(client, trainer_id, type_id):
    return client.post(f"/api/v1/trainers/{trainer_id}/trainer-types",
                       json={"trainer_type_id": type_id})


def _require(course_type, type_id):
    course_type.trainer_type_id = type_id
    db.session.commit()


class TestTrainerTypeCrud:
    def test_create_list_with_counts(self, client, trainer):
        flt = _type(client, sort_order=1)
        _type(client, "First Aid Instructor", sort_order=2)
        _assign(client, trainer.id, flt["id"])

        items = client.get("/api/v1/trainer-types").get_json()["items"]
        assert [(t["name"], t["trainer_count"]) for t in items] == [
            ("Forklift Instructor", 1), ("First Aid Instructor", 0),
        ]

    def test_name_required_and_unique(self, client):
        assert client.post("/api/v1/trainer-types", json={"name": "  "}).status_code == 422
        _type(client)
        assert client.post("/api/v1/trainer-types",
                           json={"name": "Forklift Instructor"}).status_code == 409

    def test_update(self, client):
        flt = _type(client)
        res = client.put(f"/api/v1/trainer-types/{flt['id']}", json={"description": "Counterbalance"})
        assert res.get_json()["description"] == "Counterbalance"

    def test_delete_clears_links_and_course_requirement(self, client, trainer, course_type):
        flt = _type(client)
        _assign(client, trainer.id, flt["id"])
        _require(course_type, flt["id"])

        assert client.delete(f"/api/v1/trainer-types/{flt['id']}").status_code == 200
        assert client.get(f"/api/v1/trainers/{trainer.id}/trainer-types").get_json()["total"] == 0
        assert db.session.get(CourseType, course_type.id).trainer_type_id is None


class TestAssignments:
    def test_assign_twice_conflicts(self, client, trainer):
        flt = _type(client)
        assert _assign(client, trainer.id, flt["id"]).status_code == 201
        assert _assign(client, trainer.id, flt["id"]).status_code == 409

    def test_assign_unknown_type(self, client, trainer):
        assert _assign(client, trainer.id, 999).status_code == 404

    def test_assignments_for_many(self, client, trainer):
        flt = _type(client)
        _assign(client, trainer.id, flt["id"])
        res = client.get(f"/api/v1/trainer-types/assignments?trainer_ids={trainer.id},999")
        items = res.get_json()["items"]
        assert [t["name"] for t in items[str(trainer.id)]] == ["Forklift Instructor"]
        assert "999" not in items

    def test_remove_unassigned_type(self, client, trainer):
        flt = _type(client)
        assert client.delete(
            f"/api/v1/trainers/{trainer.id}/trainer-types/{flt['id']}").status_code == 404

    def test_remove_with_future_bookings_needs_confirm(self, client, trainer, course_type):
        flt = _type(client)
        _assign(client, trainer.id, flt["id"])
        _require(course_type, flt["id"])
        client.post("/api/v1/bookings", json={
            "title": "FLT novice", "booking_date": "2030-05-06", "trainer_id": trainer.id,
            "course_type_id": course_type.id,
        })

        future = client.get(
            f"/api/v1/trainers/{trainer.id}/trainer-types/{flt['id']}/future-bookings").get_json()
        assert future == {"booking_count": 1, "earliest_booking_date": "2030-05-06",
                          "latest_booking_date": "2030-05-06"}

        url = f"/api/v1/trainers/{trainer.id}/trainer-types/{flt['id']}"
        assert client.delete(url).status_code == 409
        assert client.delete(f"{url}?confirm=true").status_code == 200
        assert client.get(f"/api/v1/trainers/{trainer.id}/trainer-types").get_json()["total"] == 0


class TestQualification:
    def test_qualified_course_types(self, client, trainer, course_type):
        flt = _type(client)
        _require(course_type, flt["id"])
        other = CourseType(code="FA", name="First Aid", required_fields=[])
        db.session.add(other)
        db.session.commit()

        names = [c["name"] for c in
                 client.get(f"/api/v1/trainers/{trainer.id}/course-types").get_json()["items"]]
        assert names == ["First Aid"]
        _assign(client, trainer.id, flt["id"])
        names = [c["name"] for c in
                 client.get(f"/api/v1/trainers/{trainer.id}/course-types").get_json()["items"]]
        assert sorted(names) == ["First Aid", "Forklift Truck"]

    def test_single_check(self, client, trainer, course_type):
        flt = _type(client)
        _require(course_type, flt["id"])
        url = f"/api/v1/trainers/{trainer.id}/qualified?course_type_id={course_type.id}"
        assert client.get(url).get_json()["qualified"] is False
        _assign(client, trainer.id, flt["id"])
        assert client.get(url).get_json()["qualified"] is True
        assert client.get(f"/api/v1/trainers/{trainer.id}/qualified").status_code == 400

    def test_untyped_course_accepts_any_trainer(self, client, trainer, course_type):
        res = client.post("/api/v1/bookings", json={
            "title": "FLT", "booking_date": "2030-05-06", "trainer_id": trainer.id,
            "course_type_id": course_type.id,
        })
        assert res.status_code == 201

    def test_booking_with_unqualified_trainer_rejected(self, client, trainer, course_type):
        flt = _type(client)
        _require(course_type, flt["id"])
        res = client.post("/api/v1/bookings", json={
            "title": "FLT", "booking_date": "2030-05-06", "trainer_id": trainer.id,
            "course_type_id": course_type.id,
        })
        assert res.status_code == 422
        assert res.get_json()["details"] == {"trainer_id": "not_qualified"}

    def test_move_to_unqualified_trainer_rejected(self, client, trainer, course_type):
        flt = _type(client)
        _assign(client, trainer.id, flt["id"])
        _require(course_type, flt["id"])
        booking = client.post("/api/v1/bookings", json={
            "title": "FLT", "booking_date": "2030-05-06", "trainer_id": trainer.id,
            "course_type_id": course_type.id,
        }).get_json()
        other = client.post("/api/v1/trainers", json={"name": "Kim Other"}).get_json()

        res = client.post(f"/api/v1/bookings/{booking['id']}/move", json={"trainer_id": other["id"]})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"trainer_id": "not_qualified"}

    def test_session_trainer_must_be_qualified(self, client, trainer, course_type):
        flt = _type(client)
        _require(course_type, flt["id"])
        res = client.post("/api/v1/open-courses/sessions", json={
            "event_title": "FLT open day", "session_date": "2030-06-10",
            "course_type_id": course_type.id, "trainer_id": trainer.id,
        })
        assert res.status_code == 422
        assert res.get_json()["details"] == {"trainer_id": "not_qualified"}

    def test_course_type_can_name_trainer_type(self, client):
        flt = _type(client)
        res = client.post("/api/v1/course-types", json={
            "code": "MEWP", "name": "MEWP Operator", "trainer_type_id": flt["id"],
        })
        assert res.status_code == 201, res.get_json()
        assert res.get_json()["trainer_type_name"] == "Forklift Instructor"
