from fastapi import status


def _create_partner(api, email="api@example.com", **extra):
    body = {"action": "create", "name": "Api Partner", "email": email, "commission_rate": 15}
    body.update(extra)
    response = api.post("/api/partners", json=body)
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()["data"]


def _create_client(api, partner_id, email="client@example.com"):
    response = api.post(
        f"/api/partners/{partner_id}/clients",
        json={"action": "add_client", "client_name": "Client", "client_email": email},
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()["data"]


def test_health(api):
    response = api.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


# -----------------------------
# PARTNERS
# -----------------------------
def test_create_partner_envelope(api):
    response = api.post(
        "/api/partners",
        json={"action": "add_partner", "name": "Acme", "email": "Acme@Example.com", "metadata": {"a": 1}},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Partner created successfully"
    assert body["data"]["email"] == "acme@example.com"
    assert body["data"]["status"] == "pending"
    assert body["data"]["commission_rate"] == 10.0
    assert body["data"]["metadata"] == {"a": 1}


def test_duplicate_partner_is_409(api):
    _create_partner(api)
    response = api.post(
        "/api/partners", json={"action": "create", "name": "Again", "email": "API@example.com"}
    )
    assert response.status_code == 409
    assert response.json() == {"success": False, "error": "A partner with this email already exists"}


def test_missing_fields_is_400(api):
    response = api.post("/api/partners", json={"action": "create", "name": "No Email"})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert "email" in body["error"]


def test_invalid_action(api):
    response = api.post("/api/partners", json={"action": "explode"})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid action"


def test_list_partners_with_pagination(api):
    for i in range(3):
        _create_partner(api, email=f"p{i}@example.com")

    response = api.get("/api/partners", params={"limit": 2, "sort_by": "email", "sort_order": "asc"})
    body = response.json()
    assert response.status_code == 200
    assert [p["email"] for p in body["data"]] == ["p0@example.com", "p1@example.com"]
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}


def test_limit_is_clamped(api):
    _create_partner(api)
    response = api.get("/api/partners", params={"limit": 5000})
    assert response.status_code == 200
    assert response.json()["pagination"]["limit"] == 100


def test_partner_detail_update_and_delete(api):
    partner = _create_partner(api)
    pid = partner["id"]

    response = api.patch(f"/api/partners/{pid}", json={"company_name": "Api Srl"})
    assert response.json()["data"]["company_name"] == "Api Srl"

    response = api.get(f"/api/partners/{pid}", params={"include_clients": "true"})
    assert response.json()["data"]["clients_count"] == 0

    _create_client(api, pid)
    response = api.delete(f"/api/partners/{pid}", params={"hard_delete": "true"})
    assert response.status_code == 400
    assert response.json()["has_clients"] is True

    response = api.delete(f"/api/partners/{pid}")
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "inactive"


def test_unknown_partner_is_404(api):
    response = api.get("/api/partners/999")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Partner not found"}


def test_suspend_and_stats(api):
    partner = _create_partner(api)
    response = api.post("/api/partners", json={"action": "suspend", "partner_id": partner["id"], "reason": "KYC"})
    assert response.json()["data"]["metadata"]["suspension_reason"] == "KYC"

    stats = api.post("/api/partners", json={"action": "stats"}).json()["data"]
    assert stats["by_status"] == {"suspended": 1}


# -----------------------------
# CLIENTS + PAYMENTS
# -----------------------------
def test_record_payment_over_http(api):
    partner = _create_partner(api)
    client = _create_client(api, partner["id"])

    response = api.post(
        f"/api/partners/{partner['id']}/clients",
        json={"action": "record_payment", "client_id": client["id"], "amount": 200},
    )
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["client"]["total_paid"] == 200.0
    assert data["client"]["subscription_status"] == "active"
    assert data["payment"]["commission_generated"] == 30.0
    assert data["payment"]["earning_id"] is not None

    listing = api.get(f"/api/partners/{partner['id']}/clients").json()
    assert listing["summary"]["total_revenue"] == 200.0


def test_duplicate_client_is_409(api):
    partner = _create_partner(api)
    _create_client(api, partner["id"])
    response = api.post(
        f"/api/partners/{partner['id']}/clients",
        json={"action": "create", "client_name": "Dup", "client_email": "CLIENT@example.com"},
    )
    assert response.status_code == 409


def test_delete_client_requires_id(api):
    partner = _create_partner(api)
    response = api.delete(f"/api/partners/{partner['id']}/clients")
    assert response.status_code == 400

    client = _create_client(api, partner["id"])
    response = api.delete(f"/api/partners/{partner['id']}/clients", params={"client_id": client["id"]})
    assert response.status_code == 200
    assert response.json()["message"] == "Client removed successfully"


# -----------------------------
# EARNINGS
# -----------------------------
def test_earning_lifecycle_over_http(api):
    partner = _create_partner(api)
    url = f"/api/partners/{partner['id']}/earnings"

    created = api.post(url, json={"action": "add_earning", "amount": "42.50"})
    assert created.status_code == 201
    earning_id = created.json()["data"]["id"]

    paid = api.post(url, json={"action": "pay", "earning_id": earning_id, "payment_method": "pix"})
    assert paid.json()["data"]["status"] == "paid"

    again = api.post(url, json={"action": "approve", "earning_id": earning_id})
    assert again.status_code == 409
    assert again.json() == {
        "success": False,
        "error": "Cannot approve earning with status: paid",
        "current_status": "paid",
        "attempted": "approve",
    }

    history = api.post(url, json={"action": "history", "earning_id": earning_id}).json()["data"]
    assert [ev["action"] for ev in history] == ["create", "mark_paid"]

    summary = api.get(url, params={"summary": "true"}).json()["data"]
    assert summary["partner"]["id"] == partner["id"]
    assert summary["summary"]["paid_amount"] == 42.5


def test_bulk_pay_over_http(api):
    partner = _create_partner(api)
    url = f"/api/partners/{partner['id']}/earnings"
    ids = [api.post(url, json={"action": "create", "amount": 10}).json()["data"]["id"] for _ in range(2)]

    response = api.post(url, json={"action": "bulk_pay", "earning_ids": ids + [9999]})
    data = response.json()["data"]
    assert data["paid_count"] == 2
    assert data["total_paid"] == 20.0
    assert data["skipped_ids"] == [9999]

    empty = api.post(url, json={"action": "bulk_pay", "earning_ids": [9999]})
    assert empty.status_code == 400
    assert empty.json()["error"] == "No valid earnings to pay"


def test_monthly_report_over_http(api):
    partner = _create_partner(api)
    url = f"/api/partners/{partner['id']}/earnings"

    response = api.post(url, json={"action": "monthly_report", "year": 2026, "month": 13})
    assert response.status_code == 400

    response = api.post(url, json={"action": "monthly_report", "year": 2026, "month": 2})
    assert response.status_code == 200
    assert response.json()["data"]["summary"]["total_transactions"] == 0
    assert response.json()["data"]["period"]["month"] == 2


def test_earnings_list_status_filter(api):
    partner = _create_partner(api)
    url = f"/api/partners/{partner['id']}/earnings"
    api.post(url, json={"action": "create", "amount": 10, "status": "approved"})
    api.post(url, json={"action": "create", "amount": 5})

    body = api.get(url, params={"status": "approved"}).json()
    assert [e["status"] for e in body["data"]] == ["approved"]
    assert body["totals"]["total_amount"] == 10.0
