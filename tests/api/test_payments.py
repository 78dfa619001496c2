"""
Tests for the payment event endpoint.

These test the HTTP layer: status codes that payment
providers act on, and the response format. Reconciliation
logic is tested in test_reconciliation_service.py.
"""

from donation_ledger.services.reconciliation_service import (
    LedgerWriteError,
    MalformedPaymentEvent,
)


def stripe_event(**overrides):
    event = {
        "provider": "stripe",
        "transaction_id": "cs_test_1",
        "amount": "5.00",
        "currency": "usd",
        "rank_tier_id": "supporter",
        "days": 30,
    }
    event.update(overrides)
    return event


class TestIngest:

    def test_new_payment_returns_201(self, client, tiers, make_account):
        account = make_account()
        response = client.post(
            "/payments/events", json=stripe_event(account_id=account.id)
        )
        assert response.status_code == 201

        data = response.json()
        assert data["accepted"] is True
        assert data["duplicate"] is False
        assert data["account_id"] == account.id
        assert data["is_guest"] is False
        assert data["rank_applied"] == "supporter"
        assert data["days_granted"] == 30

    def test_replay_returns_200_with_same_ledger_id(self, client, tiers):
        first = client.post("/payments/events", json=stripe_event())
        second = client.post("/payments/events", json=stripe_event())

        assert second.status_code == 200
        assert second.json()["duplicate"] is True
        assert second.json()["ledger_id"] == first.json()["ledger_id"]

    def test_kofi_guest(self, client, tiers, notifier):
        response = client.post("/payments/events", json={
            "provider": "kofi",
            "transaction_id": "kofi-123",
            "amount": "3.00",
            "message": "Notch extra text",
        })
        assert response.status_code == 201
        assert response.json()["is_guest"] is True
        assert len(notifier.announcements) == 1

    def test_currency_normalized(self, client, tiers):
        client.post("/payments/events", json=stripe_event())
        response = client.get("/ledger/stripe/cs_test_1")
        assert response.json()["currency"] == "USD"


class TestRejection:

    def test_unknown_provider_returns_422(self, client):
        response = client.post(
            "/payments/events", json=stripe_event(provider="paypal")
        )
        assert response.status_code == 422

    def test_zero_amount_returns_422(self, client):
        response = client.post("/payments/events", json=stripe_event(amount="0"))
        assert response.status_code == 422

    def test_blank_transaction_id_returns_422(self, client):
        response = client.post(
            "/payments/events", json=stripe_event(transaction_id="   ")
        )
        assert response.status_code == 422

    def test_storage_failure_returns_503(self, client, monkeypatch):
        def failing_process(self, event):
            raise LedgerWriteError("database is locked")

        monkeypatch.setattr(
            "donation_ledger.services.reconciliation_service."
            "ReconciliationService.process",
            failing_process,
        )
        response = client.post("/payments/events", json=stripe_event())
        assert response.status_code == 503

    def test_malformed_event_returns_400(self, client, monkeypatch):
        def rejecting_process(self, event):
            raise MalformedPaymentEvent("amount must be positive")

        monkeypatch.setattr(
            "donation_ledger.services.reconciliation_service."
            "ReconciliationService.process",
            rejecting_process,
        )
        response = client.post("/payments/events", json=stripe_event())
        assert response.status_code == 400
        assert "amount" in response.json()["detail"]
