from datetime import timedelta

from sqlmodel import select

from agrilog.models import AccessRequest, AccessStatus, utcnow
from .conftest import log_activity, user_id

def request_access(client, institution, farmer_id, **fields):
    body = {"farmer_id": farmer_id, "request_reason": "Loan appraisal"}
    body.update(fields)
    return client.post("/institution/access-requests", json=body, headers=institution)

def grant(client, institution, farmer, access_type="view"):
    farmer_id = user_id(client, farmer)
    created = request_access(client, institution, farmer_id, access_type=access_type)
    assert created.status_code == 200, created.text
    approved = client.post(f"/farmer/access-requests/{created.json()['id']}/approve", headers=farmer)
    assert approved.status_code == 200, approved.text
    return approved.json()

def test_search_requires_query(client, institution, farmer):
    assert client.get("/institution/farmers/search?q=", headers=institution).json() == []
    assert client.get("/institution/farmers/search?q=%20%20", headers=institution).json() == []

def test_search_reports_permission_state(client, institution, farmer, other_farmer):
    log_activity(client, farmer)
    results = client.get("/institution/farmers/search?q=amina", headers=institution).json()
    assert len(results) == 1
    assert results[0]["has_permission"] is False
    assert results[0]["request_status"] is None
    assert results[0]["total_entries"] == 1

    request_access(client, institution, results[0]["id"])
    results = client.get("/institution/farmers/search?q=kisumu", headers=institution).json()
    assert results[0]["request_status"] == "pending"

    verified = client.get("/institution/farmers/search?q=a&verified_only=true", headers=institution).json()
    assert verified == []

def test_request_uses_default_duration(client, institution, farmer, admin):
    farmer_id = user_id(client, farmer)
    client.put("/admin/settings", json={"default_access_duration_days": 14}, headers=admin)

    response = request_access(client, institution, farmer_id)
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "pending"
    assert body["duration_days"] == 14
    assert body["farmer_name"] == "Amina Otieno"
    assert body["institution_name"] == "Harvest Bank"

def test_duplicate_open_request_conflicts(client, institution, farmer):
    farmer_id = user_id(client, farmer)
    assert request_access(client, institution, farmer_id).status_code == 200
    assert request_access(client, institution, farmer_id).status_code == 409

def test_request_for_non_farmer(client, institution, worker):
    assert request_access(client, institution, user_id(client, worker)).status_code == 404

def test_farmer_approves_and_institution_sees_farmer(client, institution, farmer):
    approved = grant(client, institution, farmer)
    assert approved["status"] == "approved"
    assert approved["expires_at"] is not None

    farmers = client.get("/institution/approved-farmers", headers=institution).json()
    assert len(farmers) == 1
    assert farmers[0]["full_name"] == "Amina Otieno"
    assert farmers[0]["days_remaining"] in (29, 30)
    assert client.get("/institution/approved-farmers?q=peter", headers=institution).json() == []

    dashboard = client.get("/institution/dashboard", headers=institution).json()
    assert dashboard == {"approved_farmers": 1, "pending_requests": 0}

def test_transitions_are_checked(client, institution, farmer):
    created = request_access(client, institution, user_id(client, farmer)).json()
    rejected = client.post(f"/farmer/access-requests/{created['id']}/reject", headers=farmer)
    assert rejected.json()["status"] == "rejected"
    assert client.post(f"/farmer/access-requests/{created['id']}/approve", headers=farmer).status_code == 409
    assert client.post(f"/farmer/access-requests/{created['id']}/revoke", headers=farmer).status_code == 409

def test_other_farmer_cannot_answer(client, institution, farmer, other_farmer):
    created = request_access(client, institution, user_id(client, farmer)).json()
    assert client.post(f"/farmer/access-requests/{created['id']}/approve", headers=other_farmer).status_code == 404

def test_revoke_ends_access(client, institution, farmer):
    approved = grant(client, institution, farmer)
    revoked = client.post(f"/institution/access-requests/{approved['id']}/revoke", headers=institution)
    assert revoked.json()["status"] == "expired"
    assert client.get("/institution/approved-farmers", headers=institution).json() == []
    # A new request is allowed once the old one is closed
    assert request_access(client, institution, user_id(client, farmer)).status_code == 200

def test_stale_requests_expire_on_read(client, session, institution, farmer):
    approved = grant(client, institution, farmer)
    request = session.get(AccessRequest, approved["id"])
    request.expires_at = utcnow() - timedelta(minutes=1)
    session.add(request)
    session.commit()

    listed = client.get("/institution/access-requests", headers=institution).json()
    assert listed[0]["status"] == "expired"
    assert client.get("/institution/approved-farmers", headers=institution).json() == []
    expired = session.exec(select(AccessRequest).where(AccessRequest.status == AccessStatus.EXPIRED)).all()
    assert len(expired) == 1

def test_farm_profiles(client, institution, farmer):
    log_activity(client, farmer, crop="Maize")
    log_activity(client, farmer, crop="Beans")
    grant(client, institution, farmer)

    profiles = client.get("/institution/farm-profiles", headers=institution).json()
    assert len(profiles) == 1
    assert profiles[0]["crop_count"] == 2
    assert profiles[0]["ai_processed"] == 2
    assert len(profiles[0]["activities"]) == 2

def test_activity_visibility_follows_access(client, institution, farmer):
    activity = log_activity(client, farmer)
    assert client.get(f"/activities/{activity['id']}", headers=institution).status_code == 404
    grant(client, institution, farmer)
    assert client.get(f"/activities/{activity['id']}", headers=institution).status_code == 200

def test_download_requires_download_access(client, institution, farmer):
    log_activity(client, farmer)
    grant(client, institution, farmer, access_type="view")
    assert client.get("/institution/download", headers=institution).status_code == 403

def test_download_formats_and_filters(client, institution, farmer):
    log_activity(client, farmer, crop="Maize", activity_date="2026-01-15T08:00:00")
    log_activity(client, farmer, crop="Sweet Potato", activity_date="2026-03-15T08:00:00")
    grant(client, institution, farmer, access_type="view_download")

    response = client.get("/institution/download?format=csv", headers=institution)
    assert response.status_code == 200
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("Farmer,Date,Activity Type")
    assert len(lines) == 3

    rows = client.get("/institution/download?format=json&crop=potato", headers=institution).json()
    assert [r["crop"] for r in rows] == ["Sweet Potato"]
    assert rows[0]["farmer_name"] == "Amina Otieno"

    rows = client.get(
        "/institution/download?format=json&date_from=2026-01-01&date_to=2026-01-15", headers=institution
    ).json()
    assert [r["crop"] for r in rows] == ["Maize"]

    pdf = client.get("/institution/download?format=pdf", headers=institution)
    assert pdf.content.startswith(b"%PDF")

    empty = client.get("/institution/download?verified_only=true", headers=institution)
    assert empty.status_code == 404
    assert empty.json()["detail"] == "No data matches your filters"

    bad = client.get("/institution/download?date_from=someday", headers=institution)
    assert bad.status_code == 400

def test_reports_require_analytics(client, institution, farmer):
    log_activity(client, farmer)
    grant(client, institution, farmer, access_type="view_download")
    assert client.get("/institution/reports", headers=institution).status_code == 403

def test_reports(client, institution, farmer, other_farmer):
    log_activity(client, farmer, crop="Maize")
    log_activity(client, other_farmer, crop=None, activity_type="Pest")
    grant(client, institution, farmer, access_type="view_download_analytics")
    grant(client, institution, other_farmer, access_type="view_download_analytics")

    report = client.get("/institution/reports", headers=institution).json()
    assert report["total_activities"] == 2
    assert report["farmers"] == 2
    assert report["crop_distribution"] == {"Maize": 1, "Unknown": 1}
    assert report["regions"] == {"Kisumu": 1, "Nakuru": 1}

def test_institution_profile_update(client, institution):
    response = client.put(
        "/institution/profile", json={"institution_type": "bank", "country_region": "Kenya"}, headers=institution
    )
    assert response.status_code == 200
    assert response.json()["institution_type"] == "bank"
    assert response.json()["organization_name"] == "Harvest Bank"

def test_download_date_filter_uses_utc(client, institution, farmer):
    # 23:30 at UTC-2 is already the 16th in UTC
    log_activity(client, farmer, crop="Beans", activity_date="2026-01-15T23:30:00-02:00")
    grant(client, institution, farmer, access_type="view_download")

    early = client.get("/institution/download?format=json&date_to=2026-01-15", headers=institution)
    assert early.status_code == 404

    rows = client.get(
        "/institution/download?format=json&date_from=2026-01-16&date_to=2026-01-16", headers=institution
    ).json()
    assert [r["crop"] for r in rows] == ["Beans"]
    assert rows[0]["activity_date"].startswith("2026-01-16T01:30:00")
