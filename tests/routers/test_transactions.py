"""Tests for the transactions router."""

from decimal import Decimal
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from ledger_api.models.category import Category
from ledger_api.models.user import User
from ledger_api.services.transaction_extraction_service import (
    ExtractedTransaction,
    ExtractionResult,
    SelectExisting,
)

HEADERS = {"X-User-Id": "user-1"}


class TestCreateTransactionFromSms:
    """Tests for POST /api/v1/transactions/sms."""

    def test_creates_transaction(
        self,
        api_client: TestClient,
        user: User,
        default_categories: dict[str, Category],
        mock_extractor: MagicMock,
    ) -> None:
        """Test a bank SMS is stored and returned with its category."""
        groceries = default_categories["Groceries"]
        mock_extractor.extract_from_sms.return_value = ExtractionResult(
            is_transaction=True,
            transaction=ExtractedTransaction(
                amount=Decimal("845.00"),
                type="debit",
                category=SelectExisting(groceries.id, groceries.name),
                confidence=Decimal("0.88"),
                merchant="Bhat-Bhateni",
            ),
        )

        response = api_client.post(
            "/api/v1/transactions/sms",
            json={"smsBody": "NPR 845 debited at Bhat-Bhateni", "sender": "NABIL"},
            headers=HEADERS,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["user_id"] == "user-1"
        assert Decimal(data["amount"]) == Decimal("845.00")
        assert data["merchant"] == "Bhat-Bhateni"
        assert data["email_id"] is None
        assert data["is_ai_created"] is True
        assert data["category"]["name"] == "Groceries"
        mock_extractor.extract_from_sms.assert_called_once()

    def test_not_a_transaction(
        self,
        api_client: TestClient,
        user: User,
        default_categories: dict[str, Category],
        mock_extractor: MagicMock,
    ) -> None:
        """Test a non-transaction SMS returns 400."""
        mock_extractor.extract_from_sms.return_value = ExtractionResult(is_transaction=False)

        response = api_client.post(
            "/api/v1/transactions/sms", json={"smsBody": "Your OTP is 1234"}, headers=HEADERS
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Could not extract valid transaction from SMS"

    def test_empty_body_rejected(self, api_client: TestClient) -> None:
        """Test validation rejects an empty SMS."""
        response = api_client.post(
            "/api/v1/transactions/sms", json={"smsBody": ""}, headers=HEADERS
        )

        assert response.status_code == 422

    def test_requires_user(self, api_client: TestClient) -> None:
        """Test the caller identity header is required."""
        response = api_client.post("/api/v1/transactions/sms", json={"smsBody": "NPR 1"})

        assert response.status_code == 401
