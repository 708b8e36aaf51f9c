# tests/test_api.py
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from insurance_claims.main import app


def create_rule(api, **fields):
    payload = {"service_id": "SVC-CONSULT", "insurer_id": "INS-1", **fields}
    return api.post("/api/coverage-rules", json=payload)


def submit(api, **overrides):
    payload = {
        "patient_id": "PAT-001",
        "service_ref": "SVC-CONSULT",
        "service_id": "SVC-CONSULT",
        "insurer_id": "INS-1",
        "currency": "usd",
        "gross_amount": "200.00",
        **overrides,
    }
    return api.post("/api/claims", json=payload)


def test_missing_or_wrong_api_key_is_rejected():
    anonymous = TestClient(app)
    assert anonymous.get("/api/currencies", headers={"X-API-Key": "nope"}).status_code == 403
    assert anonymous.get("/api/currencies").status_code == 422


def test_currency_endpoints(api):
    currencies = api.get("/api/currencies").json()
    assert currencies[0]["code"] == "USD"
    assert currencies[0]["symbol"] == "$"

    resp = api.get("/api/currencies/usd/format", params={"amount": "160"})
    assert resp.json()["formatted"] == "$160.00"

    resp = api.get("/api/currencies/XYZ/format", params={"amount": "1"})
    assert resp.status_code == 422
    assert resp.json()["code"] == "UNKNOWN_CURRENCY"


def test_rule_with_both_strategies_is_rejected(api):
    resp = create_rule(api, copay_amount="10", copay_percentage="80")

    assert resp.status_code == 422
    assert resp.json()["code"] == "INVALID_COVERAGE_RULE"


def test_duplicate_rule_conflicts(api):
    assert create_rule(api, copay_percentage="80").status_code == 201
    resp = create_rule(api, copay_amount="5")

    assert resp.status_code == 409
    assert resp.json()["code"] == "DUPLICATE_COVERAGE_RULE"


def test_rule_patch_and_delete(api):
    create_rule(api, copay_percentage="80")

    resp = api.patch("/api/coverage-rules/SVC-CONSULT/INS-1", json={"max_coverage_amount": "100"})
    assert resp.status_code == 200
    assert Decimal(resp.json()["max_coverage_amount"]) == Decimal("100")

    assert api.delete("/api/coverage-rules/SVC-CONSULT/INS-1").status_code == 204
    assert api.get("/api/coverage-rules/SVC-CONSULT/INS-1").status_code == 404


def test_adjudicate_example(api):
    create_rule(api, copay_percentage="80")
    resp = api.post("/api/adjudicate", json={
        "service_id": "SVC-CONSULT", "insurer_id": "INS-1", "currency": "USD", "gross_amount": "200.00",
    })

    assert resp.status_code == 200
    body = resp.json()
    assert Decimal(body["result"]["insurer_amount"]) == Decimal("160.00")
    assert Decimal(body["result"]["patient_amount"]) == Decimal("40.00")
    assert body["display"]["insurer_amount"] == "$160.00"


def test_adjudicate_priced_from_registry(api):
    create_rule(api, copay_amount="25.00", max_coverage_amount="100.00")
    api.post("/api/countries/US/codes/import", json=[
        {"codeType": "CPT", "code": "99213", "description": "Office visit", "amount": "75.00"},
    ])

    resp = api.post("/api/adjudicate", json={
        "service_id": "SVC-CONSULT", "insurer_id": "INS-1", "currency": "USD",
        "country_id": "US", "code_type": "PROCEDURE", "code": "99213", "quantity": 2,
    })

    result = resp.json()["result"]
    assert Decimal(result["gross_amount"]) == Decimal("150.00")
    assert Decimal(result["insurer_amount"]) == Decimal("100.00")
    assert Decimal(result["patient_amount"]) == Decimal("50.00")
    assert result["max_coverage_capped"] is True


def test_negative_amount_blocks_submission(api):
    create_rule(api, copay_percentage="80")
    resp = submit(api, gross_amount="-1")

    assert resp.status_code == 422
    assert resp.json()["code"] == "INVALID_AMOUNT"
    assert api.get("/api/claims").json() == []


def test_claim_lifecycle_over_http(api):
    create_rule(api, copay_percentage="80")
    claim = submit(api).json()
    assert claim["status"] == "submitted"
    assert claim["submitted_by"] == "billing.clerk"

    url = f"/api/claims/{claim['id']}/transitions"
    resp = api.post(url, json={"to_status": "PAID"})
    assert resp.status_code == 409
    assert resp.json()["code"] == "INVALID_TRANSITION"
    assert "retryable" not in resp.json()

    assert api.post(url, json={"to_status": "processing"}).json()["processed_at"] is not None

    stale = api.post(url, json={"to_status": "processing", "expected_status": "submitted"})
    assert stale.status_code == 409
    assert stale.json()["code"] == "CONCURRENT_UPDATE"
    assert stale.json()["retryable"] is True

    denied = api.post(url, json={"to_status": "denied", "reason": "Policy lapsed"}).json()
    assert denied["denial_reason"] == "Policy lapsed"

    history = api.get(f"/api/claims/{claim['id']}/history").json()
    assert [h["to_status"] for h in history] == ["submitted", "processing", "denied"]


def test_supersede_over_http(api):
    create_rule(api, copay_percentage="80")
    claim = submit(api).json()

    resp = api.post(f"/api/claims/{claim['id']}/supersede", json={
        "service_id": "SVC-CONSULT", "insurer_id": "INS-1", "currency": "USD", "gross_amount": "180.00",
    })
    assert resp.status_code == 201
    assert resp.json()["supersedes_claim_id"] == claim["id"]

    assert api.get(f"/api/claims/by-number/{claim['claim_number']}").json()["id"] == claim["id"]
    assert len(api.get("/api/claims", params={"patient_id": "PAT-001"}).json()) == 2


def test_unknown_claim_is_404(api):
    resp = api.get("/api/claims/999")
    assert resp.status_code == 404
    assert resp.json()["code"] == "CLAIM_NOT_FOUND"


def test_code_import_reports_partial_success(api):
    resp = api.post("/api/countries/KE/codes/import", json=[
        {"codeType": "PROCEDURE", "code": "A1", "description": "One"},
        {"codeType": "PROCEDURE", "code": "A1", "description": "Again"},
        {"codeType": "NOPE", "code": "A2", "description": "Bad type"},
    ])
    report = resp.json()
    assert (report["processed"], report["imported"], report["skipped"]) == (3, 1, 2)

    stored = api.get(f"/api/code-uploads/{report['upload_id']}").json()
    assert stored["skipped"] == 2

    assert api.get("/api/countries/KE/codes/procedure/A1").json()["description"] == "One"
    assert api.get("/api/countries/KE/codes/cpt/ZZZ").status_code == 404
    assert api.get("/api/countries/KE/codes/surgery/A1").status_code == 422
    assert [c["code"] for c in api.get("/api/countries/KE/codes", params={"q": "one"}).json()] == ["A1"]


@pytest.mark.anyio
async def test_async_client_submit_and_fetch(client):
    await client.post("/api/coverage-rules", json={
        "service_id": "SVC-LAB", "insurer_id": "INS-2", "copay_amount": "10.00",
    })
    resp = await client.post("/api/claims", json={
        "patient_id": "PAT-009", "service_ref": "Full blood count", "service_id": "SVC-LAB",
        "insurer_id": "INS-2", "currency": "KES", "unit_price": "30.00", "quantity": 3,
    })
    assert resp.status_code == 201
    claim = resp.json()
    assert Decimal(claim["gross_amount"]) == Decimal("90.00")
    assert Decimal(claim["patient_amount"]) == Decimal("10.00")

    fetched = await client.get(f"/api/claims/{claim['id']}")
    assert fetched.json()["claim_number"] == claim["claim_number"]


def test_amount_too_large_to_format_is_422(api):
    resp = api.get("/api/currencies/USD/format", params={"amount": "1e30"})

    assert resp.status_code == 422
    assert resp.json()["code"] == "INVALID_AMOUNT"


@pytest.mark.parametrize("gross", ["-0.004", "10.005"])
def test_sub_cent_gross_blocks_submission(api, gross):
    create_rule(api, copay_percentage="80")
    resp = submit(api, gross_amount=gross)

    assert resp.status_code == 422
    assert resp.json()["code"] == "INVALID_AMOUNT"
    assert api.get("/api/claims").json() == []


def test_supersede_for_another_insurer_is_rejected(api):
    create_rule(api, copay_percentage="80")
    create_rule(api, insurer_id="INS-2", copay_amount="5.00")
    claim = submit(api).json()

    resp = api.post(f"/api/claims/{claim['id']}/supersede", json={
        "service_id": "SVC-CONSULT", "insurer_id": "INS-2", "currency": "USD", "gross_amount": "180.00",
    })

    assert resp.status_code == 422
    assert resp.json()["code"] == "CLAIM_MISMATCH"
    assert [c["id"] for c in api.get("/api/claims").json()] == [claim["id"]]


def test_approved_and_paid_amounts_over_http(api):
    create_rule(api, copay_percentage="80")
    claim = submit(api).json()
    url = f"/api/claims/{claim['id']}/transitions"

    api.post(url, json={"to_status": "processing"})
    too_much = api.post(url, json={"to_status": "approved", "amount": "500"})
    assert too_much.status_code == 422
    assert too_much.json()["code"] == "INVALID_AMOUNT"

    approved = api.post(url, json={"to_status": "approved", "amount": "150.00"}).json()
    assert Decimal(approved["approved_amount"]) == Decimal("150.00")

    paid = api.post(url, json={"to_status": "paid"}).json()
    assert Decimal(paid["paid_amount"]) == Decimal("150.00")


def test_rule_outside_its_dates_does_not_price(api):
    create_rule(api, copay_percentage="80", effective_date="2025-01-01", expiration_date="2025-06-30")
    body = {"service_id": "SVC-CONSULT", "insurer_id": "INS-1", "currency": "USD", "gross_amount": "200.00"}

    inside = api.post("/api/adjudicate", json={**body, "service_date": "2025-03-15"})
    assert inside.status_code == 200

    outside = api.post("/api/adjudicate", json={**body, "service_date": "2025-07-01"})
    assert outside.status_code == 404
    assert outside.json()["code"] == "COVERAGE_RULE_NOT_FOUND"

    rule = api.get("/api/coverage-rules/SVC-CONSULT/INS-1").json()
    assert rule["expiration_date"] == "2025-06-30"


def test_inverted_rule_dates_are_rejected(api):
    resp = create_rule(api, copay_amount="5", effective_date="2025-06-01", expiration_date="2025-01-01")

    assert resp.status_code == 422
    assert resp.json()["code"] == "INVALID_COVERAGE_RULE"


def test_blank_rule_ids_are_rejected(api):
    resp = create_rule(api, service_id="   ", copay_amount="5")

    assert resp.status_code == 422
    assert resp.json()["code"] == "INVALID_COVERAGE_RULE"
    assert api.get("/api/coverage-rules").json() == []


def test_webhook_runs_after_transition_commits(api, monkeypatch):
    delivered = []

    class Recording:
        def notify(self, event):
            delivered.append(event.to_status.value)

    monkeypatch.setattr("insurance_claims.dependencies.get_notifier", lambda: Recording())
    create_rule(api, copay_percentage="80")
    claim = submit(api).json()
    api.post(f"/api/claims/{claim['id']}/transitions", json={"to_status": "processing"})

    assert delivered == ["submitted", "processing"]
