"""
Tests for ledger API endpoints.

These test the HTTP layer — status codes, response format,
and error handling. Business logic is tested in
test_ledger_service.py.
"""


def post_payment(client, tx, account_id=None, amount="5.00"):
    return client.post("/payments/events", json={
        "provider": "square",
        "transaction_id": tx,
        "amount": amount,
        "account_id": account_id,
    }).json()


class TestLookup:

    def test_get_by_transaction(self, client):
        created = post_payment(client, "sq-1")
        response = client.get("/ledger/square/sq-1")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == created["ledger_id"]
        assert data["provider"] == "square"
        assert data["status"] == "completed"

    def test_unknown_transaction_returns_404(self, client):
        assert client.get("/ledger/square/missing").status_code == 404

    def test_wrong_provider_returns_404(self, client):
        post_payment(client, "sq-1")
        assert client.get("/ledger/kofi/sq-1").status_code == 404

    def test_invalid_provider_returns_422(self, client):
        assert client.get("/ledger/paypal/sq-1").status_code == 422


class TestStatusChange:

    def test_refund(self, client):
        created = post_payment(client, "sq-1")
        response = client.patch(
            f"/ledger/{created['ledger_id']}/status",
            json={"new_status": "refunded", "reason": "chargeback"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "refunded"

    def test_refund_twice_returns_400(self, client):
        created = post_payment(client, "sq-1")
        url = f"/ledger/{created['ledger_id']}/status"
        client.patch(url, json={"new_status": "refunded", "reason": "first"})
        response = client.patch(
            url, json={"new_status": "refunded", "reason": "second"}
        )
        assert response.status_code == 400

    def test_unknown_entry_returns_400(self, client):
        response = client.patch(
            "/ledger/999/status",
            json={"new_status": "refunded", "reason": "x"},
        )
        assert response.status_code == 400


class TestAccountDonations:

    def test_history_newest_first(self, client, make_account):
        account = make_account()
        post_payment(client, "sq-1", account.id)
        post_payment(client, "sq-2", account.id, amount="7.50")
        post_payment(client, "sq-guest")

        response = client.get(f"/accounts/{account.id}/donations")
        assert response.status_code == 200
        assert [d["transaction_id"] for d in response.json()] == ["sq-2", "sq-1"]

    def test_unknown_account_returns_404(self, client):
        assert client.get("/accounts/999/donations").status_code == 404
