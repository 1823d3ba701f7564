"""TransactionExtractionService for turning bank notifications into transactions."""

import logging
import math
from dataclasses import dataclass, field
import datetime as dt
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal

from anthropic import Anthropic
from pydantic import ValidationError

from ledger_api.models.category import UNCATEGORIZED_NAME
from ledger_api.schemas.extraction import (
    CreateNewPayload,
    ExtractionPayload,
    SelectExistingPayload,
    TransactionPayload,
    UncategorizedPayload,
)

logger = logging.getLogger(__name__)

TOOL_NAME = "record_transaction_extraction"

# Example merchants per default category, appended to the system prompt
CATEGORY_HINTS: dict[str, str] = {
    "Food and Dining": "restaurants, cafes, food delivery apps",
    "Transportation": "uber, ola, pathao, fuel, metro, parking, taxi",
    "Shopping": "retail stores, online shopping, amazon, flipkart, daraz",
    "Bills and Utilities": "electricity, water, gas, internet, phone bills",
    "Entertainment": "movies, games, streaming services, spotify, netflix, musical equipment",
    "Healthcare": "pharmacy, hospital, doctor, medical expenses",
    "Travel": "hotels, flights, booking.com, travel agencies",
    "Groceries": "supermarkets, grocery stores, raw food items (chicken, bread, eggs)",
    "Transfers": "person-to-person transfers, NEFT, IMPS, UPI, wallet loads",
    "Salary/Income": "salary credits, refunds, cashback, client invoice payments",
}

NEW_CATEGORY_EXAMPLES = [
    ("Gym membership", "Fitness"),
    ("Tuition payment", "Education"),
    ("Pet store purchase", "Pet Care"),
    ("Charity donation", "Donations"),
]

SYSTEM_PROMPT_TEMPLATE = """You are a financial message parser specialized in extracting transaction information from bank notification emails and SMS messages.

Your task is to:
1. Determine if the message is a bank transaction notification (debit/credit alert)
2. If it is, extract all relevant transaction details
3. Categorize the transaction using the category field

Always answer by calling the {tool_name} tool.

CATEGORY SELECTION RULES:
- Use the REMARKS field as the PRIMARY source for determining the category; it usually carries more merchant detail than the merchant name
- Extract the remarks completely first, then pick the best category from AVAILABLE CATEGORIES
- If an existing category fits, use action "select_existing" with its categoryId
- ONLY if no existing category fits and you can name a clear, reusable category, use action "create_new"
  - New category names should be specific but reusable (e.g. "Subscriptions", "Pet Care", "Education")
  - Do not create one-off categories for specific merchants (use "Shopping", not "Amazon")
- If you cannot determine a category, use action "uncategorized" with the id of the Uncategorized category

IMPORTANT GUIDELINES:
- Only set isTransaction=true for actual transaction alerts, not promotions, statements or OTP messages
- For SMS, look for patterns like "withdrawn by", "debited by", "credited with", "deposited"
- amount is always a positive number; use type to say whether it is a 'debit' or a 'credit'
- remarks: copy the complete remarks/description/narration text without truncating it
- bankName: the full official bank name with proper spacing (e.g. "HDFC Bank", not "HDFCBank" or "HDFC")
- Set confidence between 0 and 1; be conservative and use isTransaction=false when unsure

AVAILABLE CATEGORIES:
{category_list}

CATEGORY HINTS FOR EXISTING CATEGORIES:
{category_hints}

EXAMPLES OF WHEN TO CREATE NEW CATEGORIES:
{new_category_examples}"""


@dataclass
class CategoryInfo:
    """A category the model may choose from."""

    id: str
    name: str
    icon: str | None = None


@dataclass
class MessageInput:
    """A notification to extract from."""

    body: str
    subject: str | None = None
    sender: str | None = None
    channel: Literal["email", "sms"] = "email"


@dataclass
class SelectExisting:
    """Use a category that already exists."""

    category_id: str
    category_name: str
    reason: str | None = None


@dataclass
class CreateNew:
    """Create a category for the user; the caller persists it."""

    name: str
    icon: str | None = None
    reason: str | None = None


@dataclass
class Uncategorized:
    """Assign the Uncategorized category.

    ``category_id`` is None when the supplied list had no Uncategorized entry.
    """

    category_id: str | None = None
    category_name: str = UNCATEGORIZED_NAME


CategoryDecision = SelectExisting | CreateNew | Uncategorized


@dataclass
class ExtractedTransaction:
    """Validated transaction fields."""

    amount: Decimal
    type: Literal["debit", "credit"]
    category: CategoryDecision
    confidence: Decimal
    merchant: str | None = None
    account_last_four: str | None = None
    bank_name: str | None = None
    date: dt.date | None = None
    time: dt.time | None = None
    remarks: str | None = None


@dataclass
class ExtractionResult:
    """Judgment for one message."""

    is_transaction: bool
    transaction: ExtractedTransaction | None = None
    error: str | None = None
    category_degraded: bool = False
    raw_output: dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return self.error is not None


class TransactionExtractionError(Exception):
    """Raised when the model call or its output cannot be used."""

    pass


def _normalize_reference(value: str) -> str:
    return value.strip().strip("\"'`{}[]<>()").strip()


def resolve_category_reference(
    reference: str | None,
    categories: list[CategoryInfo],
) -> CategoryInfo | None:
    """Resolve a model-supplied category reference against the supplied list.

    Tries an exact id match, then the id with stray quoting/casing removed,
    then a case-insensitive name match.

    Args:
        reference: Id or name returned by the model.
        categories: Categories offered to the model.

    Returns:
        The matching category, or None when nothing matches.
    """
    if not reference:
        return None
    by_id = {c.id: c for c in categories}
    if reference in by_id:
        return by_id[reference]

    cleaned = _normalize_reference(reference)
    if not cleaned:
        return None
    for category in categories:
        if category.id.lower() == cleaned.lower():
            return category
    for category in categories:
        if category.name.lower() == cleaned.lower():
            return category
    return None


def resolve_first_reference(
    references: list[str],
    categories: list[CategoryInfo],
) -> CategoryInfo | None:
    """Resolve the first of several references that matches a category.

    Each reference goes through the full id-then-name chain, so a mistyped
    id is still rescued by a correct name sent alongside it.
    """
    for reference in references:
        category = resolve_category_reference(reference, categories)
        if category is not None:
            return category
    return None


def find_uncategorized(categories: list[CategoryInfo]) -> CategoryInfo | None:
    """Return the Uncategorized entry of a category list, if present."""
    for category in categories:
        if category.name.lower() == UNCATEGORIZED_NAME.lower():
            return category
    return None


def format_message_for_prompt(message: MessageInput) -> str:
    """Format an email or SMS as the user turn of the prompt."""
    parts: list[str] = []
    if message.channel == "sms":
        if message.sender:
            parts.append(f"From/Sender: {message.sender}")
        parts.append("")
        parts.append("SMS Message:")
    else:
        if message.sender:
            parts.append(f"From: {message.sender}")
        if message.subject:
            parts.append(f"Subject: {message.subject}")
        parts.append("")
        parts.append("Email Body:")
    parts.append(message.body)
    return "\n".join(parts)


def build_system_prompt(categories: list[CategoryInfo]) -> str:
    """Build the system prompt embedding the user's category catalogue."""
    category_list = "\n".join(
        f'- "{c.name}" (id: {c.id}){f" {c.icon}" if c.icon else ""}' for c in categories
    )
    category_hints = "\n".join(f"- {name}: {hint}" for name, hint in CATEGORY_HINTS.items())
    new_category_examples = "\n".join(
        f'- {trigger} → create "{name}" if not in list' for trigger, name in NEW_CATEGORY_EXAMPLES
    )
    return SYSTEM_PROMPT_TEMPLATE.format(
        tool_name=TOOL_NAME,
        category_list=category_list,
        category_hints=category_hints,
        new_category_examples=new_category_examples,
    )


def _parse_date(value: str | None) -> dt.date | None:
    if not value:
        return None
    try:
        return dt.date.fromisoformat(value.strip()[:10])
    except ValueError:
        logger.warning("Could not parse transaction date %r", value)
        return None


def _parse_time(value: str | None) -> dt.time | None:
    if not value:
        return None
    try:
        return dt.time.fromisoformat(value.strip())
    except ValueError:
        logger.warning("Could not parse transaction time %r", value)
        return None


def _clamp_confidence(value: float) -> Decimal:
    if math.isnan(value):
        return Decimal("0.00")
    bounded = min(max(value, 0.0), 1.0)
    return Decimal(str(bounded)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _to_amount(value: float) -> Decimal:
    return Decimal(str(abs(value))).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class TransactionExtractionService:
    """Service for extracting transactions from notifications using Claude.

    The model answers through a forced tool call whose input schema is the
    ``ExtractionPayload`` model, and the category reference it returns is
    resolved against the caller's category list. Never raises from
    ``extract``: any failure degrades to "not a transaction" with ``error`` set.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-sonnet-4-5-20250514",
        max_tokens: int = 1024,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the service.

        Args:
            api_key: Anthropic API key. If None, uses ANTHROPIC_API_KEY env var.
            model: Claude model to use for extraction.
            max_tokens: Response token limit.
            timeout: Seconds before the model call is abandoned.
        """
        self._client = Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self._model = model
        self._max_tokens = max_tokens

    @property
    def model(self) -> str:
        return self._model

    def _tool_definition(self) -> dict[str, Any]:
        return {
            "name": TOOL_NAME,
            "description": "Record the transaction judgment for a bank notification message.",
            "input_schema": ExtractionPayload.model_json_schema(by_alias=True),
        }

    def _call_model(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        """Send the prompt and return the forced tool call's input.

        Raises:
            TransactionExtractionError: If the call fails or no tool call is returned.
        """
        try:
            response = self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                tools=[self._tool_definition()],
                tool_choice={"type": "tool", "name": TOOL_NAME},
            )
        except Exception as e:
            raise TransactionExtractionError(f"LLM API call failed: {e}") from e

        for block in response.content:
            if getattr(block, "type", None) == "tool_use" and getattr(block, "name", None) == TOOL_NAME:
                tool_input = block.input
                if not isinstance(tool_input, dict):
                    raise TransactionExtractionError("Tool input is not an object")
                return tool_input

        raise TransactionExtractionError("Model response did not contain a tool call")

    def _parse_payload(self, tool_input: dict[str, Any]) -> ExtractionPayload:
        """Validate the tool input.

        Raises:
            TransactionExtractionError: If the payload does not match the schema.
        """
        try:
            return ExtractionPayload.model_validate(tool_input)
        except ValidationError as e:
            raise TransactionExtractionError(f"Model output failed validation: {e}") from e

    def _decide_category(
        self,
        payload: TransactionPayload,
        categories: list[CategoryInfo],
    ) -> tuple[CategoryDecision, bool]:
        """Turn the model's category payload into a decision.

        Returns:
            The decision and whether resolution fell back to Uncategorized
            because the model's reference matched nothing.
        """
        action = payload.category
        uncategorized = find_uncategorized(categories)
        fallback = Uncategorized(category_id=uncategorized.id if uncategorized else None)

        if isinstance(action, CreateNewPayload):
            existing = resolve_category_reference(action.new_category_name, categories)
            if existing is not None:
                # Model asked to create a category the user already has
                return SelectExisting(existing.id, existing.name, action.reason), False
            return (
                CreateNew(
                    name=action.new_category_name.strip(),
                    icon=_clean(action.new_category_icon),
                    reason=action.reason,
                ),
                False,
            )

        if isinstance(action, SelectExistingPayload):
            selected = resolve_first_reference(action.references, categories)
            if selected is None:
                logger.warning(
                    "Category references %r did not match any available category; "
                    "falling back to %s",
                    action.references,
                    UNCATEGORIZED_NAME,
                )
                return fallback, True
            if selected.name.lower() == UNCATEGORIZED_NAME.lower():
                return Uncategorized(category_id=selected.id, category_name=selected.name), False
            return SelectExisting(selected.id, selected.name, action.reason), False

        if isinstance(action, UncategorizedPayload):
            selected = resolve_first_reference(action.references, categories)
            if selected is not None:
                return Uncategorized(category_id=selected.id, category_name=selected.name), False
            return fallback, bool(action.references)

        return fallback, True

    def _to_result(
        self,
        payload: ExtractionPayload,
        categories: list[CategoryInfo],
        raw_output: dict[str, Any],
    ) -> ExtractionResult:
        if not payload.is_transaction or payload.transaction is None:
            return ExtractionResult(is_transaction=False, raw_output=raw_output)

        txn = payload.transaction
        amount = _to_amount(txn.amount)
        if amount <= 0:
            logger.info("Extraction returned a zero amount; treating as not a transaction")
            return ExtractionResult(is_transaction=False, raw_output=raw_output)

        decision, degraded = self._decide_category(txn, categories)
        return ExtractionResult(
            is_transaction=True,
            transaction=ExtractedTransaction(
                amount=amount,
                type=txn.type,
                category=decision,
                confidence=_clamp_confidence(txn.confidence),
                merchant=_clean(txn.merchant),
                account_last_four=_clean(txn.account_last_four),
                bank_name=_clean(txn.bank_name),
                date=_parse_date(txn.date),
                time=_parse_time(txn.time),
                remarks=_clean(txn.remarks),
            ),
            category_degraded=degraded,
            raw_output=raw_output,
        )

    def extract(
        self,
        message: MessageInput,
        available_categories: list[CategoryInfo],
    ) -> ExtractionResult:
        """Extract a transaction judgment from one message.

        Args:
            message: The email or SMS to analyze.
            available_categories: The user's effective category set.

        Returns:
            ExtractionResult. Never raises; failures come back with
            ``is_transaction=False`` and ``error`` set.
        """
        if not available_categories:
            logger.warning("No categories available for extraction; skipping model call")
            return ExtractionResult(is_transaction=False)

        try:
            tool_input = self._call_model(
                build_system_prompt(available_categories),
                format_message_for_prompt(message),
            )
            payload = self._parse_payload(tool_input)
            result = self._to_result(payload, available_categories, tool_input)
        except Exception as e:
            logger.exception("%s extraction failed", message.channel.upper())
            return ExtractionResult(is_transaction=False, error=str(e))

        if result.is_transaction and result.transaction is not None:
            decision = result.transaction.category
            if isinstance(decision, CreateNew):
                logger.info("Extractor suggests new category: %s %s", decision.icon or "", decision.name)
            elif isinstance(decision, SelectExisting):
                logger.info("Extractor selected category: %s (%s)", decision.category_name, decision.category_id)
            else:
                logger.info("Extractor selected %s (%s)", decision.category_name, decision.category_id)
        return result

    def extract_from_email(
        self,
        body: str,
        available_categories: list[CategoryInfo],
        subject: str | None = None,
        sender: str | None = None,
    ) -> ExtractionResult:
        """Extract from an email body with optional subject and From header."""
        return self.extract(
            MessageInput(body=body, subject=subject, sender=sender, channel="email"),
            available_categories,
        )

    def extract_from_sms(
        self,
        body: str,
        available_categories: list[CategoryInfo],
        sender: str | None = None,
    ) -> ExtractionResult:
        """Extract from an SMS body with optional sender."""
        return self.extract(
            MessageInput(body=body, sender=sender, channel="sms"),
            available_categories,
        )

    @staticmethod
    def is_valid_transaction(result: ExtractionResult) -> bool:
        """Check that a result carries a usable transaction."""
        return (
            result.is_transaction
            and result.transaction is not None
            and result.transaction.amount > 0
            and result.transaction.type in ("debit", "credit")
        )
