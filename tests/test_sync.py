import json

from agrilog.offline_queue import OfflineQueue, ApiSender
from .conftest import user_id

def entry(entry_id, **data):
    body = {"activity_type": "Planting", "crop": "Maize", "sync_status": "pending"}
    body.update(data)
    return {"id": entry_id, "data": body, "timestamp": "2025-03-01T08:00:00+00:00"}

def test_sync_reports_each_entry(client, farmer):
    response = client.post("/sync/activities", json={"entries": [
        entry("a-1"),
        entry("a-2", activity_type="Sowing"),
        entry("a-3", activity_type="Harvest"),
    ]}, headers=farmer)
    assert response.status_code == 200
    result = response.json()
    assert result["synced"] == ["a-1", "a-3"]
    assert [f["id"] for f in result["failed"]] == ["a-2"]

    activities = client.get("/farmer/activities", headers=farmer).json()
    assert len(activities) == 2
    assert {a["sync_status"] for a in activities} == {"synced"}

def test_sync_is_idempotent_per_entry(client, farmer):
    body = {"entries": [entry("same-id")]}
    client.post("/sync/activities", json=body, headers=farmer)
    second = client.post("/sync/activities", json=body, headers=farmer).json()
    assert second["synced"] == ["same-id"]
    assert len(client.get("/farmer/activities", headers=farmer).json()) == 1

def test_farmer_cannot_sync_for_someone_else(client, farmer, other_farmer):
    other_id = user_id(client, other_farmer)
    result = client.post(
        "/sync/activities", json={"entries": [entry("x", user_id=other_id)]}, headers=farmer
    ).json()
    assert result["synced"] == []
    assert result["failed"][0]["error"] == "Farmers can only sync their own activities"

def test_worker_entries_name_a_farmer(client, farmer, worker):
    farmer_id = user_id(client, farmer)
    result = client.post("/sync/activities", json={"entries": [
        entry("no-farmer"),
        entry("ok", user_id=farmer_id, photo_count=1),
    ]}, headers=worker).json()
    assert result["synced"] == ["ok"]
    assert result["failed"][0]["id"] == "no-farmer"

    activity = client.get("/farmer/activities", headers=farmer).json()[0]
    assert activity["is_verified"] is True
    assert activity["ai_extracted_data"]["evidence_types"] == ["photo"]

def test_institution_cannot_sync(client, institution):
    assert client.post("/sync/activities", json={"entries": []}, headers=institution).status_code == 403

def test_queue_persists_entries(tmp_path):
    path = tmp_path / "queue.json"
    queue = OfflineQueue(str(path))
    first = queue.enqueue({"activity_type": "Planting"})
    queue.enqueue({"activity_type": "Harvest"})

    stored = json.loads(path.read_text())
    assert [e["id"] for e in stored] == [first["id"], stored[1]["id"]]
    assert len(OfflineQueue(str(path))) == 2

def test_flush_keeps_failed_entries_in_order(tmp_path):
    path = tmp_path / "queue.json"
    queue = OfflineQueue(str(path))
    for activity_type in ("Planting", "Pest", "Harvest"):
        queue.enqueue({"activity_type": activity_type})

    sent = []

    def send(item):
        sent.append(item["data"]["activity_type"])
        if item["data"]["activity_type"] == "Pest":
            raise ConnectionError("offline")
        return True

    assert queue.flush(send) == 2
    assert sent == ["Planting", "Pest", "Harvest"]
    assert [e["data"]["activity_type"] for e in queue.entries] == ["Pest"]

    assert queue.flush(lambda item: True) == 1
    assert len(queue) == 0
    assert not path.exists()

def test_flush_is_not_reentrant(tmp_path):
    queue = OfflineQueue(str(tmp_path / "queue.json"))
    queue.enqueue({"activity_type": "Other"})
    inner = []

    def send(item):
        inner.append(queue.flush(lambda other: True))
        return True

    assert queue.flush(send) == 1
    assert inner == [0]
    assert queue.flush(send) == 0

def test_unreadable_queue_file_starts_empty(tmp_path):
    path = tmp_path / "queue.json"
    path.write_text("{not json")
    assert len(OfflineQueue(str(path))) == 0

def test_api_sender_against_sync_endpoint(client, farmer, tmp_path):
    queue = OfflineQueue(str(tmp_path / "queue.json"))
    queue.enqueue({"activity_type": "Irrigation", "crop": "Rice"})
    queue.enqueue({"activity_type": "Bogus"})

    sender = ApiSender("http://testserver/", token="unused")
    client.headers.update(farmer)
    sender.session = client

    assert queue.flush(sender) == 1
    assert queue.entries[0]["data"]["activity_type"] == "Bogus"
    activities = client.get("/farmer/activities").json()
    assert [a["crop"] for a in activities] == ["Rice"]
