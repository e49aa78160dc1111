from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from microloan.main import app
from microloan.services import ledger_errors, loan_ledger, payment_journal
from microloan.services.ledger_errors import HTTP_STATUS_BY_KIND, LedgerErrorKind

client = TestClient(app)


def test_every_error_kind_has_an_http_status() -> None:
    assert set(HTTP_STATUS_BY_KIND) == set(LedgerErrorKind)
    assert ledger_errors.not_found("loan", "x").status_code == 404
    assert ledger_errors.conflict("c", "m").status_code == 409
    assert ledger_errors.invalid_state("c", "m").status_code == 400
    assert ledger_errors.has_dependents("c", "m").status_code == 409
    assert ledger_errors.storage_failure().status_code == 503


def test_ledger_error_is_a_value_error_with_message() -> None:
    error = ledger_errors.not_found("rate_plan", "abc")
    assert isinstance(error, ValueError)
    assert str(error) == "Rate plan not found"
    assert error.code == "rate_plan_not_found"
    assert error.details == {"rate_plan_id": "abc"}


def test_storage_failure_error_maps_to_503(override_db, monkeypatch) -> None:
    async def fail(*_args, **_kwargs):
        raise ledger_errors.storage_failure(operation="post_payment")

    monkeypatch.setattr(payment_journal, "post_payment", fail)

    resp = client.post("/api/v1/payments", json={"loan_id": str(uuid4()), "amount": "10.00"})

    assert resp.status_code == 503
    body = resp.json()
    assert body["code"] == "storage_failure"
    assert body["details"] == {"kind": "STORAGE_FAILURE", "operation": "post_payment"}
    assert override_db.committed is False


def test_stale_loan_version_maps_to_conflict(override_db, monkeypatch) -> None:
    async def stale(*_args, **_kwargs):
        raise StaleDataError("UPDATE statement on table 'loans' expected to update 1 row(s)")

    monkeypatch.setattr(payment_journal, "post_payment", stale)

    resp = client.post("/api/v1/payments", json={"loan_id": str(uuid4()), "amount": "10.00"})

    assert resp.status_code == 409
    assert resp.json()["code"] == "concurrent_update"


def test_integrity_error_maps_to_conflict(override_db, monkeypatch) -> None:
    async def duplicate(*_args, **_kwargs):
        raise IntegrityError("UPDATE guarantees", {}, Exception("unique violation"))

    monkeypatch.setattr(loan_ledger, "originate_loan", duplicate)

    resp = client.post(
        "/api/v1/loans",
        json={"client_id": str(uuid4()), "rate_plan_id": str(uuid4()), "guarantee_id": str(uuid4())},
    )

    assert resp.status_code == 409
    assert resp.json()["code"] == "integrity_conflict"


def test_database_outage_maps_to_storage_failure(override_db, monkeypatch) -> None:
    async def down(*_args, **_kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(loan_ledger, "build_portfolio_summary", down)

    resp = client.get("/api/v1/loans/summary")

    assert resp.status_code == 503
    assert resp.json()["details"]["kind"] == "STORAGE_FAILURE"


def test_pagination_limit_is_capped(override_db, monkeypatch) -> None:
    captured = {}

    async def fake_list(_db, **kwargs):
        captured.update(kwargs)
        return [], 0

    monkeypatch.setattr(loan_ledger, "list_loans", fake_list)

    resp = client.get("/api/v1/loans", params={"page": 2, "limit": 1000})

    assert resp.status_code == 200
    assert captured["page"] == 2
    assert captured["limit"] == 100
    assert resp.json()["data"]["pagination"] == {"page": 2, "limit": 100, "total": 0, "pages": 0}


@pytest.mark.parametrize("path", ["/api/v1/loans/not-a-uuid", "/api/v1/payments/not-a-uuid"])
def test_malformed_identifiers_are_validation_errors(override_db, path) -> None:
    resp = client.get(path)
    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"


def test_storage_errors_translate_into_ledger_vocabulary() -> None:
    stale = ledger_errors.from_storage_error(StaleDataError("version mismatch"))
    assert (stale.kind, stale.code) == (LedgerErrorKind.CONFLICT, "concurrent_update")

    duplicate = ledger_errors.from_storage_error(IntegrityError("INSERT", {}, Exception("dup")))
    assert duplicate.code == "integrity_conflict"

    outage = ledger_errors.from_storage_error(OperationalError("SELECT 1", {}, Exception("down")))
    assert outage.kind is LedgerErrorKind.STORAGE_FAILURE
    assert outage.status_code == 503


def test_ledger_error_survives_propagation_through_yield_dependencies() -> None:
    error = ledger_errors.conflict("guarantee_unavailable", "Guarantee is already pledged to another loan")
    error.__traceback__ = None
    error.__context__ = RuntimeError("cause")
    assert error.args == ("Guarantee is already pledged to another loan",)


def test_ledger_error_raised_inside_request_renders_envelope(override_db, monkeypatch) -> None:
    async def rejected(*_args, **_kwargs):
        raise ledger_errors.not_found("payment", "abc")

    monkeypatch.setattr(payment_journal, "reverse_payment", rejected)

    resp = client.delete(f"/api/v1/payments/{uuid4()}")

    assert resp.status_code == 404
    assert resp.json() == {
        "code": "payment_not_found",
        "message": "Payment not found",
        "data": None,
        "details": {"kind": "NOT_FOUND", "payment_id": "abc"},
    }
