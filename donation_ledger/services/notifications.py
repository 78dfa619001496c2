"""
Notification sink — Discord role sync, donation announcements
and operator alerts.

The reconciliation core depends only on the NotificationSink
protocol. DiscordNotifier is the production implementation and
talks to Discord over plain HTTPS with httpx: the bot token is
used for guild role changes, and two webhooks receive the
public announcement and the operator alert.

Every method raises on an HTTP error. Callers run these through
the outbox, which logs and drops failures.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol
from urllib.parse import quote

import httpx

from donation_ledger.config import Settings
from donation_ledger.models.enums import PaymentKind

logger = logging.getLogger(__name__)

PAYMENT_KIND_LABELS = {
    PaymentKind.ONE_TIME: "💎 One-Time",
    PaymentKind.SUBSCRIPTION: "📅 Monthly Subscription",
    PaymentKind.SUBSCRIPTION_RENEWAL: "🔄 Renewal",
}

DONATION_EMBED_COLOR = 0x00FF88


@dataclass(frozen=True)
class DonationAnnouncement:
    donor_name: str
    amount: Decimal
    currency: str
    payment_kind: PaymentKind = PaymentKind.ONE_TIME
    rank_name: str | None = None
    days: int | None = None
    message: str | None = None
    minecraft_username: str | None = None


class NotificationSink(Protocol):
    def sync_roles(
        self,
        discord_user_id: str,
        add_role_id: str | None = None,
        remove_role_id: str | None = None,
    ) -> None: ...

    def announce_donation(self, announcement: DonationAnnouncement) -> None: ...

    def alert_operators(self, message: str) -> None: ...


def build_donation_embed(announcement: DonationAnnouncement) -> dict:
    """Build the Discord embed for a donation announcement."""
    fields = [
        {
            "name": "💵 Amount",
            "value": f"${announcement.amount:.2f} {announcement.currency}",
            "inline": True,
        },
        {
            "name": "Type",
            "value": PAYMENT_KIND_LABELS.get(announcement.payment_kind, "💎 One-Time"),
            "inline": True,
        },
    ]
    if announcement.rank_name:
        rank_value = announcement.rank_name
        if announcement.days:
            rank_value += f" ({announcement.days} days)"
        fields.append({"name": "🏆 Rank", "value": rank_value, "inline": True})
    if announcement.message:
        fields.append({
            "name": "💬 Message",
            "value": announcement.message[:1024],
            "inline": False,
        })

    embed = {
        "title": "💰 New Donation!",
        "description": f"**{announcement.donor_name}** just supported the server!",
        "color": DONATION_EMBED_COLOR,
        "fields": fields,
    }
    if announcement.minecraft_username:
        embed["thumbnail"] = {
            "url": (
                "https://minotar.net/armor/bust/"
                f"{quote(announcement.minecraft_username)}/100.png"
            )
        }
    return embed


class DiscordNotifier:

    def __init__(
        self,
        *,
        api_base: str = "https://discord.com/api/v10",
        bot_token: str = "",
        guild_id: str = "",
        donation_webhook_url: str = "",
        alert_webhook_url: str = "",
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.bot_token = bot_token
        self.guild_id = guild_id
        self.donation_webhook_url = donation_webhook_url
        self.alert_webhook_url = alert_webhook_url
        self.client = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DiscordNotifier":
        return cls(
            api_base=settings.DISCORD_API_BASE,
            bot_token=settings.DISCORD_BOT_TOKEN,
            guild_id=settings.DISCORD_GUILD_ID,
            donation_webhook_url=settings.DISCORD_DONATION_WEBHOOK_URL,
            alert_webhook_url=settings.OPERATOR_ALERT_WEBHOOK_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    def _member_role_url(self, discord_user_id: str, role_id: str) -> str:
        return (
            f"{self.api_base}/guilds/{self.guild_id}"
            f"/members/{discord_user_id}/roles/{role_id}"
        )

    def sync_roles(
        self,
        discord_user_id: str,
        add_role_id: str | None = None,
        remove_role_id: str | None = None,
    ) -> None:
        """Swap the member's donation role: remove the old, add the new."""
        if not self.bot_token or not self.guild_id:
            logger.info("Discord bot not configured, skipping role sync")
            return
        if add_role_id == remove_role_id:
            return

        headers = {
            "Authorization": f"Bot {self.bot_token}",
            "X-Audit-Log-Reason": "Donation rank change",
        }
        if remove_role_id:
            response = self.client.delete(
                self._member_role_url(discord_user_id, remove_role_id),
                headers=headers,
            )
            response.raise_for_status()
        if add_role_id:
            response = self.client.put(
                self._member_role_url(discord_user_id, add_role_id),
                headers=headers,
            )
            response.raise_for_status()
        logger.info(
            "Synced Discord roles for %s (+%s -%s)",
            discord_user_id, add_role_id, remove_role_id,
        )

    def announce_donation(self, announcement: DonationAnnouncement) -> None:
        if not self.donation_webhook_url:
            logger.info("No donation webhook configured, skipping announcement")
            return
        response = self.client.post(
            self.donation_webhook_url,
            json={"embeds": [build_donation_embed(announcement)]},
        )
        response.raise_for_status()

    def alert_operators(self, message: str) -> None:
        if not self.alert_webhook_url:
            logger.info("No operator alert webhook configured, skipping alert")
            return
        response = self.client.post(
            self.alert_webhook_url, json={"content": message[:2000]}
        )
        response.raise_for_status()

    def close(self) -> None:
        self.client.close()
