"""
Test RDV (rendez-vous admin-famille / admin-professeur)

Tests for:
1. POST /api/rdv validation (HH:MM time, physique/visio, context id, past day)
2. List filters, sort, family detail, stats, admin availability
3. PUT / DELETE, cascade with the family
"""

from datetime import datetime, timezone

import pytest

FUTURE_DAY = "2099-03-02"


def rdv_payload(family_id=None, **overrides):
    payload = {
        "entity_type": "admin-family",
        "family_id": family_id,
        "date": FUTURE_DAY,
        "time": "14:00",
        "type": "physique",
        "notes": "Premier rendez-vous",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_rdv(client, admin_headers):
    def _make(family_id=None, **overrides):
        r = client.post("/api/rdv", json=rdv_payload(family_id, **overrides), headers=admin_headers)
        assert r.status_code == 201, r.text
        return r.json()["rdv"]
    return _make


@pytest.fixture
def professor(client, admin_headers, make_subject):
    r = client.post("/api/professors", json={
        "first_name": "Claire",
        "last_name": "Moreau",
        "email": "claire.moreau@abc-cours.test",
        "subjects": [make_subject()["id"]],
    }, headers=admin_headers)
    assert r.status_code == 201, r.text
    return r.json()["professor"]


class TestRdvCreate:
    def test_01_create_family_rdv(self, client, admin_headers, admin_user, make_family):
        """POST /api/rdv creates a planned RDV assigned to the connected admin"""
        family = make_family()
        r = client.post("/api/rdv", json=rdv_payload(family["id"]), headers=admin_headers)
        assert r.status_code == 201, r.text
        rdv = r.json()["rdv"]
        assert r.json()["message"] == "Rendez-vous créé avec succès"
        assert rdv["status"] == "planned"
        assert rdv["date"] == "2099-03-02T00:00:00+00:00"
        assert rdv["time"] == "14:00"
        assert rdv["assigned_admin_id"] == admin_user["id"]
        assert rdv["family_name"] == "Marie Dupont"
        assert rdv["professor_id"] is None

    def test_02_time_is_zero_padded(self, make_family, make_rdv):
        rdv = make_rdv(make_family()["id"], time="9:05")
        assert rdv["time"] == "09:05"

    @pytest.mark.parametrize("field,value", [
        ("time", "25:00"),
        ("time", "14h30"),
        ("type", "telephone"),
        ("status", "annule"),
        ("entity_type", "admin-student"),
        ("date", ""),
        ("date", "demain"),
    ])
    def test_03_invalid_values(self, client, admin_headers, make_family, field, value):
        payload = rdv_payload(make_family()["id"], **{field: value})
        r = client.post("/api/rdv", json=payload, headers=admin_headers)
        assert r.status_code == 400

    def test_04_notes_length(self, client, admin_headers, make_family):
        payload = rdv_payload(make_family()["id"], notes="x" * 1001)
        assert client.post("/api/rdv", json=payload, headers=admin_headers).status_code == 400

    def test_05_family_id_required_for_family_rdv(self, client, admin_headers):
        r = client.post("/api/rdv", json=rdv_payload(None), headers=admin_headers)
        assert r.status_code == 400
        assert "family_id" in r.json()["detail"]

    def test_06_unknown_family(self, client, admin_headers):
        r = client.post("/api/rdv", json=rdv_payload("nope"), headers=admin_headers)
        assert r.status_code == 404

    def test_07_professor_rdv(self, client, admin_headers, professor, make_family):
        r = client.post("/api/rdv", json=rdv_payload(entity_type="admin-professor"), headers=admin_headers)
        assert r.status_code == 400

        r = client.post("/api/rdv", json=rdv_payload(
            make_family()["id"], entity_type="admin-professor", professor_id=professor["id"], type="visio",
        ), headers=admin_headers)
        assert r.status_code == 201, r.text
        rdv = r.json()["rdv"]
        assert rdv["professor_name"] == "Claire Moreau"
        assert rdv["family_id"] is None
        assert rdv["type"] == "visio"

    def test_08_planned_rdv_in_the_past_refused(self, client, admin_headers, make_family, make_rdv):
        family = make_family()
        r = client.post("/api/rdv", json=rdv_payload(family["id"], date="2020-01-01"), headers=admin_headers)
        assert r.status_code == 400

        rdv = make_rdv(family["id"], date="2020-01-01", status="done")
        assert rdv["status"] == "done"

    def test_09_assigned_user_must_be_admin(self, client, admin_headers, professor_user, make_family):
        payload = rdv_payload(make_family()["id"], assigned_admin_id=professor_user["id"])
        r = client.post("/api/rdv", json=payload, headers=admin_headers)
        assert r.status_code == 404

    def test_10_professor_can_read_not_write(self, client, professor_headers, admin_headers, make_family, make_rdv):
        family = make_family()
        make_rdv(family["id"])
        r = client.post("/api/rdv", json=rdv_payload(family["id"]), headers=professor_headers)
        assert r.status_code == 403
        r = client.get("/api/rdv", headers=professor_headers)
        assert r.status_code == 200
        assert r.json()["pagination"]["total_items"] == 1

    def test_11_creation_is_logged(self, client, admin_headers, make_family, make_rdv):
        family = make_family()
        rdv = make_rdv(family["id"])
        r = client.get(f"/api/event-log?action=rdv_create&entity_id={rdv['id']}", headers=admin_headers)
        event = r.json()["events"][0]
        assert event["related"]["family_id"] == family["id"]
        assert event["details"]["time"] == "14:00"


class TestRdvRead:
    def test_01_sorted_by_date_then_time(self, client, admin_headers, make_family, make_rdv):
        family_id = make_family()["id"]
        make_rdv(family_id, date="2099-03-03", time="09:00")
        make_rdv(family_id, time="16:00")
        make_rdv(family_id, time="10:30")

        r = client.get("/api/rdv", headers=admin_headers)
        assert r.status_code == 200
        assert [(x["date"][:10], x["time"]) for x in r.json()["rdvs"]] == [
            ("2099-03-02", "10:30"), ("2099-03-02", "16:00"), ("2099-03-03", "09:00"),
        ]

    def test_02_filters(self, client, admin_headers, make_family, make_rdv):
        family_id = make_family()["id"]
        make_rdv(family_id, date="2099-03-02")
        make_rdv(family_id, date="2099-04-10", type="visio")
        make_rdv(family_id, date="2020-01-01", status="done")

        r = client.get("/api/rdv?status=planned&date_from=2099-03-01&date_to=2099-03-31", headers=admin_headers)
        assert [x["date"][:10] for x in r.json()["rdvs"]] == ["2099-03-02"]

        r = client.get(f"/api/rdv?family_id={family_id}&type=visio", headers=admin_headers)
        assert [x["date"][:10] for x in r.json()["rdvs"]] == ["2099-04-10"]

        assert client.get("/api/rdv?date_from=hier", headers=admin_headers).status_code == 400

    def test_03_get_one(self, client, admin_headers, make_family, make_rdv):
        rdv = make_rdv(make_family()["id"])
        r = client.get(f"/api/rdv/{rdv['id']}", headers=admin_headers)
        assert r.status_code == 200
        assert r.json()["rdv"]["admin_name"] == "Admin Test"
        assert client.get("/api/rdv/nope", headers=admin_headers).status_code == 404

    def test_04_family_detail_lists_rdvs(self, client, admin_headers, make_family, make_rdv):
        family = make_family()
        rdv = make_rdv(family["id"])
        r = client.get(f"/api/families/{family['id']}", headers=admin_headers)
        assert [x["id"] for x in r.json()["family"]["rdvs"]] == [rdv["id"]]

    def test_05_summary(self, client, admin_headers, make_family, make_rdv):
        family_id = make_family()["id"]
        today = datetime.now(timezone.utc).date().isoformat()
        make_rdv(family_id, date=today)
        make_rdv(family_id)
        make_rdv(family_id, date="2020-01-01", status="done")

        r = client.get("/api/rdv/stats/summary", headers=admin_headers)
        assert r.status_code == 200
        data = r.json()
        assert data["total"] == 3
        assert data["by_status"] == {"planned": 2, "done": 1}
        assert data["today_count"] == 1
        assert data["week_count"] == 1

    def test_06_availability(self, client, admin_headers, admin_user, make_family, make_rdv):
        make_rdv(make_family()["id"], time="9:00")
        url = f"/api/rdv/availability/{admin_user['id']}"

        r = client.get(f"{url}?date={FUTURE_DAY}&time=09:00", headers=admin_headers)
        assert r.json()["available"] is False
        assert r.json()["conflict"]["status"] == "planned"

        r = client.get(f"{url}?date={FUTURE_DAY}&time=10:00", headers=admin_headers)
        assert r.json() == {"available": True, "conflict": None}

        r = client.get(f"{url}?date={FUTURE_DAY}&time=midi", headers=admin_headers)
        assert r.status_code == 400


class TestRdvUpdate:
    def test_01_mark_done(self, client, admin_headers, make_family, make_rdv):
        """PUT /api/rdv/{id} updates status and logs the change"""
        rdv = make_rdv(make_family()["id"])
        r = client.put(f"/api/rdv/{rdv['id']}", json={"status": "done", "notes": "  RAS  "}, headers=admin_headers)
        assert r.status_code == 200
        assert r.json()["rdv"]["status"] == "done"
        assert r.json()["rdv"]["notes"] == "RAS"

        r = client.get(f"/api/event-log?action=rdv_update&entity_id={rdv['id']}", headers=admin_headers)
        details = r.json()["events"][0]["details"]
        assert details["status"] == {"old_value": "planned", "new_value": "done"}

    def test_02_move_to_past_day_refused(self, client, admin_headers, make_family, make_rdv):
        rdv = make_rdv(make_family()["id"])
        r = client.put(f"/api/rdv/{rdv['id']}", json={"date": "2020-01-01"}, headers=admin_headers)
        assert r.status_code == 400
        assert client.get(f"/api/rdv/{rdv['id']}", headers=admin_headers).json()["rdv"]["date"][:10] == FUTURE_DAY

    def test_03_reschedule(self, client, admin_headers, make_family, make_rdv):
        rdv = make_rdv(make_family()["id"])
        r = client.put(f"/api/rdv/{rdv['id']}", json={"date": "2099-05-01", "time": "8:15"}, headers=admin_headers)
        assert r.json()["rdv"]["date"] == "2099-05-01T00:00:00+00:00"
        assert r.json()["rdv"]["time"] == "08:15"

    def test_04_unknown(self, client, admin_headers):
        assert client.put("/api/rdv/nope", json={"status": "done"}, headers=admin_headers).status_code == 404
        assert client.delete("/api/rdv/nope", headers=admin_headers).status_code == 404

    def test_05_delete(self, client, admin_headers, make_family, make_rdv):
        rdv = make_rdv(make_family()["id"])
        r = client.delete(f"/api/rdv/{rdv['id']}", headers=admin_headers)
        assert r.status_code == 200
        assert r.json()["action"] == "deleted"
        assert client.get(f"/api/rdv/{rdv['id']}", headers=admin_headers).status_code == 404

    def test_06_family_delete_removes_rdvs(self, client, admin_headers, make_family, make_rdv):
        family = make_family()
        make_rdv(family["id"])
        r = client.delete(f"/api/families/{family['id']}", headers=admin_headers)
        assert r.json()["deleted"]["rdvs"] == 1
        assert client.get("/api/rdv", headers=admin_headers).json()["rdvs"] == []
