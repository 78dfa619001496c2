"""
Tests for the Discord notifier.

httpx.MockTransport stands in for Discord, so requests are
checked without touching the network.
"""

import json
from decimal import Decimal

import httpx
import pytest

from donation_ledger.models import PaymentKind
from donation_ledger.services.notifications import (
    DiscordNotifier,
    DonationAnnouncement,
    build_donation_embed,
)


class RecordingTransport:

    def __init__(self, status_code=204):
        self.status_code = status_code
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return httpx.Response(self.status_code)


def make_notifier(transport, **kwargs):
    options = {
        "api_base": "https://discord.test/api/v10",
        "bot_token": "token",
        "guild_id": "guild-1",
        "donation_webhook_url": "https://hooks.test/donations",
        "alert_webhook_url": "https://hooks.test/alerts",
    }
    options.update(kwargs)
    client = httpx.Client(transport=httpx.MockTransport(transport))
    return DiscordNotifier(client=client, **options)


class TestDonationEmbed:

    def test_full_announcement(self):
        embed = build_donation_embed(DonationAnnouncement(
            donor_name="Notch",
            amount=Decimal("12"),
            currency="USD",
            payment_kind=PaymentKind.SUBSCRIPTION,
            rank_name="Patron",
            days=36,
            message="great server",
            minecraft_username="Notch",
        ))
        fields = {f["name"]: f["value"] for f in embed["fields"]}

        assert embed["title"] == "💰 New Donation!"
        assert "**Notch**" in embed["description"]
        assert fields["💵 Amount"] == "$12.00 USD"
        assert fields["Type"] == "📅 Monthly Subscription"
        assert fields["🏆 Rank"] == "Patron (36 days)"
        assert fields["💬 Message"] == "great server"
        assert embed["thumbnail"]["url"].endswith("/Notch/100.png")

    def test_tip_without_rank_or_message(self):
        embed = build_donation_embed(DonationAnnouncement(
            donor_name="Anonymous", amount=Decimal("1.5"), currency="EUR",
        ))
        names = [f["name"] for f in embed["fields"]]

        assert names == ["💵 Amount", "Type"]
        assert "thumbnail" not in embed


class TestSyncRoles:

    def test_removes_old_then_adds_new(self):
        transport = RecordingTransport()
        make_notifier(transport).sync_roles("user-1", "role-new", "role-old")

        methods = [(r.method, r.url.path) for r in transport.requests]
        assert methods == [
            ("DELETE", "/api/v10/guilds/guild-1/members/user-1/roles/role-old"),
            ("PUT", "/api/v10/guilds/guild-1/members/user-1/roles/role-new"),
        ]
        assert transport.requests[0].headers["Authorization"] == "Bot token"

    def test_same_role_is_a_no_op(self):
        transport = RecordingTransport()
        make_notifier(transport).sync_roles("user-1", "role-a", "role-a")
        assert transport.requests == []

    def test_unconfigured_bot_skips(self):
        transport = RecordingTransport()
        make_notifier(transport, bot_token="").sync_roles("user-1", "role-a")
        assert transport.requests == []

    def test_http_error_raises(self):
        notifier = make_notifier(RecordingTransport(status_code=403))
        with pytest.raises(httpx.HTTPStatusError):
            notifier.sync_roles("user-1", "role-a")


class TestWebhooks:

    def test_announce_posts_embed(self):
        transport = RecordingTransport()
        make_notifier(transport).announce_donation(DonationAnnouncement(
            donor_name="Steve", amount=Decimal("5"), currency="USD",
        ))

        request = transport.requests[0]
        assert str(request.url) == "https://hooks.test/donations"
        assert json.loads(request.content)["embeds"][0]["title"] == "💰 New Donation!"

    def test_alert_truncated_to_discord_limit(self):
        transport = RecordingTransport()
        make_notifier(transport).alert_operators("x" * 5000)
        assert len(json.loads(transport.requests[0].content)["content"]) == 2000

    def test_missing_webhooks_skip(self):
        transport = RecordingTransport()
        notifier = make_notifier(
            transport, donation_webhook_url="", alert_webhook_url=""
        )
        notifier.announce_donation(DonationAnnouncement(
            donor_name="Steve", amount=Decimal("5"), currency="USD",
        ))
        notifier.alert_operators("hello")
        assert transport.requests == []
