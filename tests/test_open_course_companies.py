"""
Open course company tests.

Covers:
    - Create / update / duplicate names / search / active filter
    - Stats: delegates, completed courses, certificates
    - Delete unlinks delegates
    - Company delegates and course summary
    - Linking delegates one at a time and in bulk, find-or-create
"""

BASE = "/api/v1/open-courses"


def _company(client, name="Northern Haulage", **kw):
    res = client.post(f"{BASE}/companies", json={"name": name, **kw})
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _session(client, **kw):
    payload = {"event_title": "Driver CPC: Safe Loading", "session_date": "2030-06-10", "capacity": 10}
    payload.update(kw)
    res = client.post(f"{BASE}/sessions", json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _delegate(client, session_id, name, **kw):
    res = client.post(f"{BASE}/sessions/{session_id}/delegates", json={"delegate_name": name, **kw})
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _attend(client, delegate_id, attendance="attended"):
    client.put(f"{BASE}/delegates/{delegate_id}/attendance", json={"attendance": attendance})


class TestCompanies:
    def test_create_and_update(self, client):
        company = _company(client, email=" ops@northern.example ", town="Hull")
        assert company["active"] is True
        assert company["email"] == "ops@northern.example"

        res = client.put(f"{BASE}/companies/{company['id']}", json={"telephone": "01482 000000"})
        assert res.get_json()["telephone"] == "01482 000000"

    def test_name_required(self, client):
        res = client.post(f"{BASE}/companies", json={"town": "Hull"})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"name": "required"}

    def test_duplicate_name_ignores_case(self, client):
        _company(client)
        res = client.post(f"{BASE}/companies", json={"name": "northern haulage"})
        assert res.status_code == 409

    def test_rename_onto_existing_conflicts(self, client):
        _company(client)
        other = _company(client, "Southern Freight")
        res = client.put(f"{BASE}/companies/{other['id']}", json={"name": "NORTHERN HAULAGE"})
        assert res.status_code == 409

    def test_list_search_and_inactive(self, client):
        _company(client, contact_name="Jo Fleet")
        gone = _company(client, "Closed Carriers")
        client.put(f"{BASE}/companies/{gone['id']}", json={"active": "false"})

        names = [c["name"] for c in client.get(f"{BASE}/companies").get_json()["items"]]
        assert names == ["Northern Haulage"]
        everything = client.get(f"{BASE}/companies?include_inactive=true").get_json()
        assert everything["total"] == 2
        found = client.get(f"{BASE}/companies?search=fleet").get_json()["items"]
        assert [c["name"] for c in found] == ["Northern Haulage"]

    def test_options_lists_active_only(self, client):
        keep = _company(client)
        gone = _company(client, "Closed Carriers", active=False)
        items = client.get(f"{BASE}/companies/options").get_json()["items"]
        assert items == [{"id": keep["id"], "name": "Northern Haulage"}]
        assert gone["active"] is False

    def test_find_or_create(self, client):
        first = client.post(f"{BASE}/companies/find-or-create", json={"name": "Acme Freight"}).get_json()
        again = client.post(f"{BASE}/companies/find-or-create",
                            json={"name": "  acme freight "}).get_json()
        assert again["id"] == first["id"]
        assert client.post(f"{BASE}/companies/find-or-create", json={}).status_code == 422


class TestStats:
    def test_counts(self, client, course_type):
        company = _company(client)
        s = _session(client, course_type_id=course_type.id)
        attended = _delegate(client, s["id"], "A", company_id=company["id"])
        _delegate(client, s["id"], "B", company_id=company["id"])
        cancelled = _delegate(client, s["id"], "C", company_id=company["id"])
        client.post(f"{BASE}/delegates/{cancelled['id']}/cancel", json={})
        _attend(client, attended["id"], "late")
        res = client.post(f"{BASE}/delegates/{attended['id']}/certificate",
                          json={"issue_date": "2030-06-10"})
        assert res.status_code == 201, res.get_json()

        detail = client.get(f"{BASE}/companies/{company['id']}").get_json()
        assert detail["delegate_count"] == 2
        assert detail["courses_completed"] == 1
        assert detail["certificates_issued"] == 1
        listed = client.get(f"{BASE}/companies").get_json()["items"][0]
        assert listed["delegate_count"] == 2

    def test_unknown_company(self, client):
        assert client.get(f"{BASE}/companies/999").status_code == 404


class TestDelete:
    def test_delete_unlinks_delegates(self, client):
        company = _company(client)
        s = _session(client)
        d = _delegate(client, s["id"], "A", company_id=company["id"])

        res = client.delete(f"{BASE}/companies/{company['id']}")
        assert res.status_code == 200
        assert res.get_json()["delegates_unlinked"] == 1
        delegate = client.get(f"{BASE}/delegates/{d['id']}").get_json()
        assert delegate["company_id"] is None
        assert delegate["delegate_name"] == "A"


class TestDelegates:
    def test_delegate_rejects_unknown_company(self, client):
        s = _session(client)
        res = client.post(f"{BASE}/sessions/{s['id']}/delegates",
                          json={"delegate_name": "A", "company_id": 999})
        assert res.status_code == 404

    def test_company_delegates_newest_first(self, client, course_type):
        company = _company(client)
        early = _session(client, course_type_id=course_type.id, session_date="2030-03-01")
        late = _session(client, course_type_id=course_type.id, session_date="2030-09-01")
        _delegate(client, early["id"], "Early", company_id=company["id"])
        d = _delegate(client, late["id"], "Late", company_id=company["id"])
        _attend(client, d["id"])
        client.post(f"{BASE}/delegates/{d['id']}/certificate", json={"issue_date": "2030-09-01"})

        items = client.get(f"{BASE}/companies/{company['id']}/delegates").get_json()["items"]
        assert [i["delegate_name"] for i in items] == ["Late", "Early"]
        assert items[0]["course_type_name"] == "Forklift Truck"
        assert items[0]["session"]["session_date"] == "2030-09-01"
        assert items[0]["certificate"]["candidate_name"] == "Late"
        assert items[1]["certificate"] is None

    def test_delegate_list_filters_by_company(self, client):
        company = _company(client)
        s = _session(client)
        _delegate(client, s["id"], "Linked", company_id=company["id"])
        _delegate(client, s["id"], "Loose")
        rows = client.get(f"{BASE}/delegates?company_id={company['id']}").get_json()["items"]
        assert [r["delegate_name"] for r in rows] == ["Linked"]
        assert rows[0]["company_name"] == "Northern Haulage"

    def test_course_summary(self, client, course_type):
        company = _company(client)
        s1 = _session(client, course_type_id=course_type.id)
        s2 = _session(client, course_type_id=course_type.id, session_date="2030-07-01")
        for sid, name in ((s1["id"], "A"), (s1["id"], "B"), (s2["id"], "C")):
            _delegate(client, sid, name, company_id=company["id"])

        items = client.get(f"{BASE}/companies/{company['id']}/course-summary").get_json()["items"]
        assert items == [{
            "course_type_id": course_type.id,
            "course_type_name": "Forklift Truck",
            "sessions_count": 2,
            "delegates_count": 3,
            "certificates_issued": 0,
        }]

    def test_link_and_unlink(self, client):
        company = _company(client)
        s = _session(client)
        d = _delegate(client, s["id"], "A")
        res = client.put(f"{BASE}/companies/delegates/{d['id']}", json={"company_id": company["id"]})
        assert res.get_json()["company_id"] == company["id"]
        res = client.put(f"{BASE}/companies/delegates/{d['id']}", json={"company_id": None})
        assert res.get_json()["company_id"] is None

    def test_bulk_link(self, client):
        company = _company(client)
        s = _session(client)
        ids = [_delegate(client, s["id"], name)["id"] for name in ("A", "B")]
        res = client.post(f"{BASE}/companies/{company['id']}/delegates", json={"delegate_ids": ids})
        assert res.get_json()["linked"] == 2
        assert client.get(f"{BASE}/companies/{company['id']}").get_json()["delegate_count"] == 2

    def test_bulk_link_unknown_delegate_links_nothing(self, client):
        company = _company(client)
        s = _session(client)
        d = _delegate(client, s["id"], "A")
        res = client.post(f"{BASE}/companies/{company['id']}/delegates",
                          json={"delegate_ids": [d["id"], 999]})
        assert res.status_code == 404
        assert client.get(f"{BASE}/delegates/{d['id']}").get_json()["company_id"] is None
