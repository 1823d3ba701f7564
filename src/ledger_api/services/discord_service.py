"""DiscordService for posting new-transaction and extractor-failure messages."""

import logging
from dataclasses import dataclass
from typing import Literal

import httpx

logger = logging.getLogger(__name__)

TransactionSource = Literal["api", "api_sms", "gmail"]

_SOURCE_LABELS = {
    "api": ("✏️", "Manual (API)"),
    "api_sms": ("📱", "SMS (API)"),
    "gmail": ("📧", "Gmail"),
}


@dataclass
class NewTransactionNotice:
    """What a new-transaction message shows."""

    id: str
    amount: str
    type: Literal["debit", "credit"]
    merchant: str | None
    source: TransactionSource
    category: str | None = None
    transaction_date: str | None = None


class DiscordService:
    """Posts to a Discord webhook.

    Does nothing when no webhook URL is configured. Delivery failures are
    logged and never raised, so a broken webhook cannot fail ingestion.
    """

    def __init__(
        self,
        webhook_url: str = "",
        frontend_base_url: str = "",
        http_client: httpx.Client | None = None,
        timeout: float = 5.0,
    ) -> None:
        """Initialize the service.

        Args:
            webhook_url: Discord webhook URL; empty disables posting.
            frontend_base_url: Base URL used for transaction links.
            http_client: Optional preconfigured httpx client (for testing).
            timeout: Request timeout in seconds.
        """
        self._webhook_url = (webhook_url or "").strip()
        self._frontend_base_url = frontend_base_url.rstrip("/")
        self._http = http_client or httpx.Client(timeout=timeout)

    @property
    def enabled(self) -> bool:
        return bool(self._webhook_url)

    def close(self) -> None:
        self._http.close()

    def notify_new_transaction(self, notice: NewTransactionNotice) -> None:
        """Post a summary of a newly recorded transaction."""
        if not self.enabled:
            return

        type_emoji = "💰" if notice.type == "credit" else "💸"
        source_emoji, source_label = _SOURCE_LABELS.get(notice.source, ("📧", notice.source))
        lines = [
            f"## {type_emoji} New transaction",
            "",
            f"**{type_emoji} Amount:** {notice.amount} ({notice.type})",
            f"**🏪 Merchant:** {notice.merchant or '—'}",
            f"**📁 Category:** {notice.category or '—'}",
            f"**{source_emoji} Source:** {source_label}",
            f"**📅 Date:** {notice.transaction_date or 'unknown'}",
        ]
        if self._frontend_base_url:
            lines += ["", f"🔗 [View transaction]({self._frontend_base_url}/transactions/{notice.id})"]
        self._post("\n".join(lines))

    def notify_extractor_failed(self, context: Literal["email", "sms"], error: object) -> None:
        """Post an alert that extraction failed for a message."""
        if not self.enabled:
            return

        context_emoji = "📧" if context == "email" else "📱"
        lines = [
            "## ⚠️ Transaction extractor failed",
            "",
            f"**{context_emoji} Context:** {context}",
            f"**❌ Error:** {error}",
        ]
        self._post("\n".join(lines))

    def _post(self, content: str) -> None:
        try:
            response = self._http.post(self._webhook_url, json={"content": content})
        except httpx.HTTPError as e:
            logger.error("Discord webhook request failed: %s", e)
            return
        if not response.is_success:
            logger.error(
                "Discord webhook failed: %s %s", response.status_code, response.reason_phrase
            )
