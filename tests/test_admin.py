from .conftest import log_activity, user_id, PASSWORD

def test_stats(client, admin, farmer, other_farmer, worker, institution):
    log_activity(client, farmer)
    client.post(
        "/institution/access-requests", json={"farmer_id": user_id(client, farmer)}, headers=institution
    )
    stats = client.get("/admin/stats", headers=admin).json()
    assert stats == {
        "farmers": 2,
        "institutions": 1,
        "extension_workers": 1,
        "activities": 1,
        "pending_requests": 1,
    }

def test_user_search(client, admin, farmer, worker):
    users = client.get("/admin/users", headers=admin).json()
    assert len(users) == 3
    found = client.get("/admin/users?q=grace", headers=admin).json()
    assert [u["role"] for u in found] == ["enumerator"]

def test_deactivate_and_activate(client, admin, farmer):
    farmer_id = user_id(client, farmer)
    response = client.post(f"/admin/users/{farmer_id}/deactivate", headers=admin)
    assert response.json()["is_active"] is False

    assert client.get("/farmer/dashboard", headers=farmer).status_code == 403
    login = client.post("/auth/token", data={"username": "amina@agrilog.org", "password": PASSWORD})
    assert login.status_code == 403

    client.post(f"/admin/users/{farmer_id}/activate", headers=admin)
    assert client.get("/farmer/dashboard", headers=farmer).status_code == 200

def test_admin_cannot_deactivate_self(client, admin):
    admin_id = user_id(client, admin)
    assert client.post(f"/admin/users/{admin_id}/deactivate", headers=admin).status_code == 400
    assert client.post("/admin/users/9999/deactivate", headers=admin).status_code == 404

def test_create_users_including_admins(client, admin):
    response = client.post("/admin/users", json={
        "email": "ops@agrilog.org",
        "password": PASSWORD,
        "full_name": "Ops Admin",
        "phone_number": "0712345678",
        "role": "admin",
    }, headers=admin)
    assert response.status_code == 200
    assert response.json()["role"] == "admin"

    login = client.post("/auth/token", data={"username": "ops@agrilog.org", "password": PASSWORD})
    assert login.status_code == 200

def test_workers_and_organizations(client, admin, farmer, worker, institution):
    client.post(
        f"/extension/farmers/{user_id(client, farmer)}/activities",
        json={"activity_type": "Planting"},
        headers=worker,
    )
    workers = client.get("/admin/extension-workers", headers=admin).json()
    assert workers[0]["full_name"] == "Grace Wanjiru"
    assert workers[0]["submissions"] == 1

    organizations = client.get("/admin/organizations", headers=admin).json()
    assert organizations[0]["organization_name"] == "Harvest Bank"
    assert organizations[0]["access_requests"] == 0

def test_recent_activities_and_audit_log(client, admin, farmer):
    for _ in range(3):
        log_activity(client, farmer)
    assert len(client.get("/admin/activities", headers=admin).json()) == 3

    actions = [entry["action"] for entry in client.get("/admin/audit-logs", headers=admin).json()]
    assert actions.count("activity.create") == 3
    assert "user.register" in actions

def test_admin_revokes_requests(client, admin, institution, farmer):
    farmer_id = user_id(client, farmer)
    pending = client.post("/institution/access-requests", json={"farmer_id": farmer_id}, headers=institution).json()
    response = client.post(f"/admin/access-requests/{pending['id']}/revoke", headers=admin)
    assert response.json()["status"] == "rejected"

    second = client.post("/institution/access-requests", json={"farmer_id": farmer_id}, headers=institution).json()
    client.post(f"/farmer/access-requests/{second['id']}/approve", headers=farmer)
    response = client.post(f"/admin/access-requests/{second['id']}/revoke", headers=admin)
    assert response.json()["status"] == "expired"

    assert client.post(f"/admin/access-requests/{second['id']}/revoke", headers=admin).status_code == 409
    assert len(client.get("/admin/access-requests", headers=admin).json()) == 2
    assert len(client.get("/admin/access-requests?status=expired", headers=admin).json()) == 1

def test_data_quality(client, admin, farmer):
    log_activity(client, farmer, notes="rows of 75cm")
    flagged = log_activity(client, farmer, activity_type="Harvest", crop="Maize")
    log_activity(client, farmer, crop=None)

    quality = client.get("/admin/data-quality", headers=admin).json()
    assert quality["total_activities"] == 3
    assert quality["completeness_pct"] == 33.3
    assert quality["ai_processed_pct"] == 100.0
    assert quality["flagged_entries"] == 1
    assert quality["flagged_ids"] == [flagged["id"]]

def test_reports(client, admin, farmer):
    log_activity(client, farmer, activity_date="2026-01-15T08:00:00")
    log_activity(client, farmer, activity_date="2026-02-15T08:00:00")
    report = client.get("/admin/reports", headers=admin).json()
    assert report["activity_volume"] == {"2026-01": 1, "2026-02": 1}
    assert sum(report["user_growth"].values()) == 2

def test_settings(client, admin):
    settings = client.get("/admin/settings", headers=admin).json()
    assert settings == {
        "auto_confirm_signups": True,
        "require_admin_2fa": False,
        "default_access_duration_days": 30,
    }

    updated = client.put("/admin/settings", json={"require_admin_2fa": True}, headers=admin).json()
    assert updated["require_admin_2fa"] is True
    assert updated["default_access_duration_days"] == 30

    assert client.put("/admin/settings", json={"default_access_duration_days": 0}, headers=admin).status_code == 422
    actions = [entry["action"] for entry in client.get("/admin/audit-logs", headers=admin).json()]
    assert "settings.update" in actions
