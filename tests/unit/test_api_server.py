from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from conftest import PRIVATE_KEY, RECIPIENT, TX_HASH
from privacy_pool.api.server import create_app
from privacy_pool.core.rpc import RpcError

REQUEST_BODY = {
    "note": {"commitment": "12345", "amount": "1.0", "label": "777", "noteIndex": 0},
    "withdrawAmount": "0.5",
    "recipientAddress": RECIPIENT,
    "account": {"privateKey": PRIVATE_KEY},
}


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def client(service):
    with TestClient(create_app(service)) as c:
        yield c


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_quote(client):
    response = client.post("/withdrawals/quote", json={"withdrawAmount": "100"})
    assert response.status_code == 200
    body = response.json()
    assert Decimal(body["execution_fee"]) == Decimal("10")
    assert Decimal(body["you_receive"]) == Decimal("90")
    assert body["relay_fee_bps"] == 1000


def test_quote_invalid_amount(client):
    response = client.post("/withdrawals/quote", json={"withdrawAmount": "abc"})
    assert response.status_code == 400
    assert response.json()["error"] == "InvalidAmountError"


def test_quote_missing_amount(client):
    # Should fail pydantic validation
    response = client.post("/withdrawals/quote", json={})
    assert response.status_code == 422


def test_prepare_then_execute(client, accounts):
    response = client.post("/withdrawals", json=REQUEST_BODY)
    assert response.status_code == 200
    body = response.json()
    assert body["next_note_index"] == 1
    assert int(body["context"]) > 0
    assert body["call_data"].startswith("0x")
    assert Decimal(body["amounts"]["you_receive"]) == Decimal("0.45")
    assert accounts.executed == []

    response = client.post(f"/withdrawals/{body['id']}/execute")
    assert response.status_code == 200
    assert response.json() == {"id": body["id"], "tx_id": TX_HASH}
    assert len(accounts.executed) == 1

    # Each prepared withdrawal is submitted at most once
    response = client.post(f"/withdrawals/{body['id']}/execute")
    assert response.status_code == 404


def test_prepare_response_has_no_secrets(client):
    response = client.post("/withdrawals", json=REQUEST_BODY)
    assert PRIVATE_KEY[2:] not in response.text
    assert "nullifier" not in response.text


def test_prepare_validation_error(client):
    body = dict(REQUEST_BODY, recipientAddress="not-an-address")
    response = client.post("/withdrawals", json=body)
    assert response.status_code == 400
    assert response.json()["error"] == "InvalidRecipientError"
    assert response.json()["stage"] == "validated"


def test_prepare_fetch_error(client, sources):
    _, pool = sources
    pool.fetch_pool_scope.side_effect = RpcError("eth_call: node unavailable")
    response = client.post("/withdrawals", json=REQUEST_BODY)
    assert response.status_code == 502
    assert response.json()["error"] == "DataFetchError"
    assert response.json()["stage"] == "data_fetched"


def test_execute_unknown_id(client):
    response = client.post("/withdrawals/does-not-exist/execute")
    assert response.status_code == 404


def test_failed_execute_can_be_retried(client, service, accounts):
    prepared_id = client.post("/withdrawals", json=REQUEST_BODY).json()["id"]

    def bundler_down(handle, op):
        raise RpcError("bundler down")

    original = accounts.execute_withdrawal_operation
    accounts.execute_withdrawal_operation = bundler_down
    response = client.post(f"/withdrawals/{prepared_id}/execute")
    assert response.status_code == 502
    assert response.json()["error"] == "SubmissionError"

    accounts.execute_withdrawal_operation = original
    response = client.post(f"/withdrawals/{prepared_id}/execute")
    assert response.status_code == 200


def test_discard_prepared_withdrawal(client, accounts):
    prepared_id = client.post("/withdrawals", json=REQUEST_BODY).json()["id"]

    response = client.delete(f"/withdrawals/{prepared_id}")
    assert response.status_code == 204
    assert client.app.state.prepared == {}

    response = client.post(f"/withdrawals/{prepared_id}/execute")
    assert response.status_code == 404
    assert accounts.executed == []


def test_discard_unknown_id(client):
    response = client.delete("/withdrawals/does-not-exist")
    assert response.status_code == 404


def test_pending_withdrawals_are_capped(service):
    with TestClient(create_app(service, max_pending=2)) as c:
        ids = [c.post("/withdrawals", json=REQUEST_BODY).json()["id"] for _ in range(3)]

        assert list(c.app.state.prepared) == ids[1:]
        # the oldest one was dropped
        assert c.post(f"/withdrawals/{ids[0]}/execute").status_code == 404
        assert c.post(f"/withdrawals/{ids[2]}/execute").status_code == 200
