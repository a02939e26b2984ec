from .conftest import log_activity, user_id

SUFFIX = " — Collected by Extension Worker (Verified Source)"

def collect(client, worker, farmer_id, **fields):
    body = {"activity_type": "Fertilizer", "crop": "Maize", "activity_date": "2026-03-05T09:00:00"}
    body.update(fields)
    response = client.post(f"/extension/farmers/{farmer_id}/activities", json=body, headers=worker)
    assert response.status_code == 200, response.text
    return response.json()

def test_collected_entry_is_verified(client, farmer, worker):
    farmer_id = user_id(client, farmer)
    worker_id = user_id(client, worker)
    activity = collect(client, worker, farmer_id, photo_count=2, text_notes="leaf yellowing")

    assert activity["user_id"] == farmer_id
    assert activity["is_verified"] is True
    assert activity["collected_by"] == worker_id
    assert activity["farmer_confirmation"] == "pending"
    assert activity["ai_summary"] == "Planted maize on the north plot." + SUFFIX

    extracted = activity["ai_extracted_data"]
    assert extracted["crop"] == "maize"
    assert extracted["collected_by"] == worker_id
    assert extracted["collector_name"] == "Grace Wanjiru"
    assert extracted["verification_level"] == "extension_worker"
    assert extracted["evidence_types"] == ["photo", "text"]

def test_collected_entry_fallback_summary(client, farmer, worker, llm):
    llm.unavailable = True
    activity = collect(client, worker, user_id(client, farmer), crop=None)
    assert activity["ai_summary"] == (
        "Fertilizer activity for crop. Collected by extension worker - verified source." + SUFFIX
    )

def test_collect_for_unknown_farmer(client, worker, institution):
    institution_id = user_id(client, institution)
    response = client.post(
        f"/extension/farmers/{institution_id}/activities", json={"activity_type": "Planting"}, headers=worker
    )
    assert response.status_code == 404
    assert client.get("/extension/farmers/9999", headers=worker).status_code == 404

def test_farmers_cannot_use_extension_routes(client, farmer):
    assert client.get("/extension/farmers", headers=farmer).status_code == 403

def test_roster_counts_and_search(client, farmer, other_farmer, worker):
    farmer_id = user_id(client, farmer)
    log_activity(client, farmer)
    collect(client, worker, farmer_id)

    roster = client.get("/extension/farmers", headers=worker).json()
    assert [f["full_name"] for f in roster] == ["Amina Otieno", "Peter Mwangi"]
    amina = roster[0]
    assert amina["total_entries"] == 2
    assert amina["verified_entries"] == 1

    found = client.get("/extension/farmers?q=nakuru", headers=worker).json()
    assert [f["full_name"] for f in found] == ["Peter Mwangi"]

    detail = client.get(f"/extension/farmers/{farmer_id}", headers=worker).json()
    assert detail["village_location"] == "Kisumu"

def test_farmer_fields_visible_to_worker(client, farmer, worker):
    client.post("/farmer/fields", json={"name": "River plot"}, headers=farmer)
    fields = client.get(f"/extension/farmers/{user_id(client, farmer)}/fields", headers=worker).json()
    assert [f["name"] for f in fields] == ["River plot"]

def test_submissions_and_approvals(client, farmer, other_farmer, worker):
    first = collect(client, worker, user_id(client, farmer))
    collect(client, worker, user_id(client, other_farmer), activity_type="Harvest")

    submissions = client.get("/extension/submissions", headers=worker).json()
    assert len(submissions) == 2
    assert {s["farmer_name"] for s in submissions} == {"Amina Otieno", "Peter Mwangi"}

    harvests = client.get("/extension/submissions?activity_type=Harvest", headers=worker).json()
    assert [s["farmer_name"] for s in harvests] == ["Peter Mwangi"]
    by_name = client.get("/extension/submissions?q=amina", headers=worker).json()
    assert [s["id"] for s in by_name] == [first["id"]]

    client.post(f"/farmer/activities/{first['id']}/confirm", headers=farmer)
    approvals = {a["id"]: a["farmer_confirmation"] for a in client.get("/extension/pending-approvals", headers=worker).json()}
    assert approvals[first["id"]] == "accepted"
    assert sorted(approvals.values()) == ["accepted", "pending"]

    dashboard = client.get("/extension/dashboard", headers=worker).json()
    assert dashboard["submissions"] == 2
    assert dashboard["pending_approvals"] == 1
    assert dashboard["farmers"] == 2
