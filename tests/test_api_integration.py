"""
Integration tests for the Loan Desk API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

from loan_desk.api import create_app
from loan_desk.api.auth import LoanDeskSystem, get_system
from loan_desk.config import LoanDeskConfig
from loan_desk.storage import InMemoryStorage


ADMIN = {"X-Role": "admin", "X-User-Id": "admin-1"}
AGENT = {"X-Role": "agent", "X-User-Id": "agent-1"}


@pytest.fixture
def system():
    """Loan desk wired to in-memory storage"""
    return LoanDeskSystem(storage=InMemoryStorage(), config=LoanDeskConfig(use_sqlite=False))


@pytest.fixture
def client(system):
    """Create a test client with the test system swapped in"""
    app = create_app()
    app.dependency_overrides[get_system] = lambda: system
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client, name="Asha Verma", phone="9876543210", headers=AGENT, **extra):
    payload = {"name": name, "phone": phone, "address": "12 MG Road, Pune 411001"}
    payload.update(extra)
    r = client.post("/customers", json=payload, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()["customer_id"]


def apply(client, customer_id, amount=120000, interest_rate=12, tenure=12):
    r = client.post("/loans", json={
        "customer_id": customer_id,
        "amount": amount,
        "interest_rate": interest_rate,
        "tenure": tenure,
    }, headers=ADMIN)
    assert r.status_code == 201, r.text
    return r.json()["loan_id"]


def disbursed(client, customer_id, on="2024-01-15"):
    loan_id = apply(client, customer_id)
    assert client.post(f"/loans/{loan_id}/approve", headers=ADMIN).status_code == 200
    r = client.post(f"/loans/{loan_id}/disburse", json={"disbursal_date": on}, headers=ADMIN)
    assert r.status_code == 200, r.text
    return r.json()


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        data = r.json()
        assert data["name"] == "Loan Desk API"
        assert "loans" in data["endpoints"]


class TestRoles:
    """Test role header handling"""

    def test_missing_role_header(self, client):
        r = client.get("/customers")
        assert r.status_code == 422

    def test_unknown_role(self, client):
        r = client.get("/customers", headers={"X-Role": "auditor"})
        assert r.status_code == 403

    def test_customer_role_needs_customer_id(self, client):
        r = client.get("/loans", headers={"X-Role": "customer"})
        assert r.status_code == 403

    def test_denied_operation(self, client):
        customer_id = register(client)
        r = client.delete(f"/customers/{customer_id}", headers=AGENT)
        assert r.status_code == 403
        assert r.json()["error"] == "PermissionDenied"


class TestCustomerFlow:
    """End-to-end customer management tests"""

    def test_register_and_get(self, client):
        customer_id = register(client, aadhaar_number="123412341234")

        r = client.get(f"/customers/{customer_id}", headers=AGENT)
        assert r.status_code == 200
        data = r.json()
        assert data["name"] == "Asha Verma"
        assert data["has_kyc"] is True

        r = client.get("/customers", headers=ADMIN)
        assert [c["id"] for c in r.json()["customers"]] == [customer_id]

    def test_invalid_phone(self, client):
        r = client.post("/customers", json={
            "name": "Asha Verma", "phone": "12345", "address": "12 MG Road, Pune 411001"
        }, headers=AGENT)
        assert r.status_code == 422

    def test_unknown_customer(self, client):
        r = client.get("/customers/missing", headers=ADMIN)
        assert r.status_code == 404
        assert r.json()["error"] == "CustomerNotFound"

    def test_rename_shows_on_loans(self, client):
        customer_id = register(client)
        loan_id = apply(client, customer_id)

        r = client.patch(f"/customers/{customer_id}", json={"name": "Asha Kulkarni"}, headers=AGENT)
        assert r.status_code == 200
        assert r.json()["name"] == "Asha Kulkarni"

        r = client.get(f"/loans/{loan_id}", headers=ADMIN)
        assert r.json()["customer_name"] == "Asha Kulkarni"

    def test_kyc_attach_once(self, client):
        customer_id = register(client)

        r = client.post(f"/customers/{customer_id}/kyc", json={"pan_number": "ABCDE1234F"}, headers=AGENT)
        assert r.status_code == 200
        assert r.json()["pan_number"] == "ABCDE1234F"

        r = client.post(f"/customers/{customer_id}/kyc", json={"aadhaar_number": "123412341234"}, headers=AGENT)
        assert r.status_code == 409

    def test_delete_customer_with_loans(self, client):
        customer_id = register(client)
        apply(client, customer_id)

        r = client.delete(f"/customers/{customer_id}", headers=ADMIN)
        assert r.status_code == 409
        assert r.json()["error"] == "CustomerHasLoans"


class TestLoanFlow:
    """End-to-end loan lifecycle tests"""

    def test_quote(self, client):
        r = client.get("/loans/quote", params={"amount": "120000", "interest_rate": "12", "tenure": 12})
        assert r.status_code == 200
        data = r.json()
        assert data["installment"] == {"amount": "10661.85", "currency": "INR"}
        assert data["total_payable"]["amount"] == "127942.26"

    def test_apply_out_of_bounds(self, client):
        customer_id = register(client)
        r = client.post("/loans", json={
            "customer_id": customer_id, "amount": 500, "interest_rate": 12, "tenure": 12
        }, headers=ADMIN)
        assert r.status_code == 422
        assert r.json()["error"] == "InvalidParameters"

    def test_full_lifecycle(self, client):
        customer_id = register(client)
        loan = disbursed(client, customer_id)

        assert loan["status"] == "Disbursed"
        assert loan["disbursal_date"] == "2024-01-15"
        assert len(loan["emis"]) == 12
        first = loan["emis"][0]
        assert first["amount"] == "10661.85"
        assert first["interest"] == "1200.00"
        assert first["principal"] == "9461.85"
        assert first["balance"] == "110538.15"
        assert first["due_date"] == "2024-02-15"
        assert loan["net_disbursed"]["amount"] == "114000.00"

        for emi in loan["emis"]:
            r = client.post(f"/loans/{loan['id']}/emis/{emi['id']}/pay", json={
                "payment_date": emi["due_date"],
                "receipt_number": f"R-{emi['number']}",
                "payment_method": "Cash",
            }, headers=AGENT)
            assert r.status_code == 200, r.text

        data = r.json()
        assert data["status"] == "Closed"
        assert data["emis"][0]["payment_method"] == "Cash"
        assert data["emis"][0]["receipt_number"] == "R-1"

    def test_lifecycle_conflicts(self, client):
        customer_id = register(client)
        loan = disbursed(client, customer_id)
        loan_id = loan["id"]
        emi_id = loan["emis"][0]["id"]

        # Second disbursal
        r = client.post(f"/loans/{loan_id}/disburse", headers=ADMIN)
        assert r.status_code == 409
        assert r.json()["error"] == "InvalidTransition"

        # Terms are frozen
        r = client.patch(f"/loans/{loan_id}", json={"amount": 90000}, headers=ADMIN)
        assert r.status_code == 409
        assert r.json()["error"] == "ImmutableAfterDisbursal"

        # Double payment
        assert client.post(f"/loans/{loan_id}/emis/{emi_id}/pay", headers=AGENT).status_code == 200
        r = client.post(f"/loans/{loan_id}/emis/{emi_id}/pay", headers=AGENT)
        assert r.status_code == 409
        assert r.json()["error"] == "AlreadyPaid"

        # Unknown installment
        r = client.post(f"/loans/{loan_id}/emis/nope/pay", headers=AGENT)
        assert r.status_code == 404

    def test_reject_after_approval_conflicts(self, client):
        customer_id = register(client)
        loan_id = apply(client, customer_id)
        client.post(f"/loans/{loan_id}/approve", headers=ADMIN)

        r = client.post(f"/loans/{loan_id}/reject", json={"reason": "Changed mind"}, headers=ADMIN)
        assert r.status_code == 409

    def test_reject_pending(self, client):
        customer_id = register(client)
        loan_id = apply(client, customer_id)

        r = client.post(f"/loans/{loan_id}/reject", json={"reason": "Low income"}, headers=ADMIN)
        assert r.status_code == 200
        assert r.json()["status"] == "Rejected"
        assert r.json()["history"][-1]["description"] == "Loan rejected: Low income"

    def test_edit_pending(self, client):
        customer_id = register(client)
        loan_id = apply(client, customer_id)

        r = client.patch(f"/loans/{loan_id}", json={"tenure": 24, "processing_fee": 2}, headers=ADMIN)
        assert r.status_code == 200
        data = r.json()
        assert data["tenure"] == 24
        assert data["processing_fee"] == "2"
        assert data["amount"]["amount"] == "120000.00"

    def test_agent_cannot_approve(self, client):
        customer_id = register(client)
        loan_id = apply(client, customer_id)
        r = client.post(f"/loans/{loan_id}/approve", headers=AGENT)
        assert r.status_code == 403

    def test_list_by_status(self, client):
        customer_id = register(client)
        pending_id = apply(client, customer_id)
        approved_id = apply(client, customer_id)
        client.post(f"/loans/{approved_id}/approve", headers=ADMIN)

        r = client.get("/loans", params={"status": "Pending"}, headers=ADMIN)
        assert [loan["id"] for loan in r.json()["loans"]] == [pending_id]

        r = client.get("/loans", params={"status": "Approved"}, headers=AGENT)
        assert [loan["id"] for loan in r.json()["loans"]] == [approved_id]

    def test_customer_sees_own_loans(self, client):
        asha = register(client)
        vikram = register(client, name="Vikram Rao", phone="9123456780")
        own = apply(client, asha)
        other = apply(client, vikram)
        headers = {"X-Role": "customer", "X-Customer-Id": asha}

        r = client.get("/loans", headers=headers)
        assert [loan["id"] for loan in r.json()["loans"]] == [own]

        assert client.get(f"/loans/{own}", headers=headers).status_code == 200
        assert client.get(f"/loans/{other}", headers=headers).status_code == 403

    def test_delete_loan(self, client):
        customer_id = register(client)
        loan_id = apply(client, customer_id)

        r = client.delete(f"/loans/{loan_id}", headers=ADMIN)
        assert r.status_code == 200
        assert client.get(f"/loans/{loan_id}", headers=ADMIN).status_code == 404
        assert client.delete(f"/loans/{loan_id}", headers=ADMIN).status_code == 404


class TestReports:
    """Reporting and audit endpoints"""

    def test_dashboard(self, client):
        customer_id = register(client)
        disbursed(client, customer_id)
        apply(client, customer_id)

        r = client.get("/reports/dashboard", params={"as_of": "2024-02-10"}, headers=AGENT)
        assert r.status_code == 200
        data = r.json()
        assert data["total_customers"] == 1
        assert data["total_loans"] == 1
        assert data["net_disbursed"] == "114000.00"
        assert data["upcoming_emis"] == 1
        assert data["overdue_emis"] == 0
        assert data["pending_applications"] == 1

    def test_emi_collection(self, client):
        customer_id = register(client, guarantor_name="Ravi Verma", guarantor_phone="9123456780")
        disbursed(client, customer_id)

        r = client.get("/reports/emi-collection", params={"year": 2024, "month": 2}, headers=AGENT)
        assert r.status_code == 200
        data = r.json()
        assert len(data["rows"]) == 1
        assert data["rows"][0]["guarantor_phone"] == "9123456780"
        assert data["total_due"] == "10661.85"

        r = client.get("/reports/emi-collection", params={"year": 2024, "month": 13}, headers=AGENT)
        assert r.status_code == 422

    def test_customer_summary(self, client):
        customer_id = register(client)
        disbursed(client, customer_id)
        headers = {"X-Role": "customer", "X-Customer-Id": customer_id}

        r = client.get(f"/reports/customers/{customer_id}/summary", headers=headers)
        assert r.status_code == 200
        data = r.json()
        assert data["active_loans"] == 1
        assert data["next_emi_date"] == "2024-02-15"

        other = register(client, name="Vikram Rao", phone="9123456780")
        r = client.get(f"/reports/customers/{other}/summary", headers=headers)
        assert r.status_code == 403

    def test_applications(self, client):
        customer_id = register(client)
        loan_id = apply(client, customer_id)

        r = client.get("/reports/applications", headers=ADMIN)
        assert r.status_code == 200
        assert [loan["id"] for loan in r.json()["pending"]] == [loan_id]

    def test_audit_verify(self, client, system):
        customer_id = register(client)
        disbursed(client, customer_id)

        r = client.get("/audit/verify", headers=ADMIN)
        assert r.status_code == 200
        data = r.json()
        assert data["valid"] is True
        assert data["total_events"] == 4   # registered, applied, approved, disbursed

        assert system.audit_trail.count_events() == 5
        assert client.get("/audit/verify", headers=AGENT).status_code == 403

    def test_audit_events_for_loan(self, client):
        customer_id = register(client)
        loan = disbursed(client, customer_id)

        r = client.get(f"/audit/events/loan/{loan['id']}", headers=ADMIN)
        assert r.status_code == 200
        types = [event["event_type"] for event in r.json()["events"]]
        assert types == ["loan_applied", "loan_approved", "loan_disbursed"]

        r = client.get(f"/audit/events/loan/{loan['id']}", params={"limit": 1}, headers=ADMIN)
        assert [event["event_type"] for event in r.json()["events"]] == ["loan_disbursed"]
