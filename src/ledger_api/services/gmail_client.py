"""GmailClient for the Gmail REST API and OAuth token refresh."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import httpx
from sqlalchemy.orm import Session
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledger_api.core.config import Settings
from ledger_api.core.timeutils import utcnow
from ledger_api.repositories.mailbox_sync_state_repository import (
    MailboxSyncStateRepository,
)

logger = logging.getLogger(__name__)

UNREAD_LABEL = "UNREAD"
_RATE_LIMIT_REASONS = ("ratelimitexceeded", "userratelimitexceeded", "quotaexceeded")


class GmailAPIError(Exception):
    """Raised when the Gmail API returns an unexpected response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GmailNotFoundError(GmailAPIError):
    """Raised on 404: unknown message or expired history id."""

    pass


class GmailAuthError(GmailAPIError):
    """Raised when the stored credential is invalid or revoked."""

    pass


class GmailTransientError(GmailAPIError):
    """Raised on 5xx, rate limiting and transport failures."""

    pass


class GmailCredentialsMissingError(GmailAuthError):
    """Raised when no credential is stored for a user."""

    pass


@dataclass
class HistoryPage:
    """One page of ``users.history.list``."""

    history: list[dict[str, Any]]
    history_id: str | None
    next_page_token: str | None


@dataclass
class WatchRegistration:
    """Result of ``users.watch``."""

    history_id: str
    expiration: datetime | None


def _error_detail(response: httpx.Response) -> str:
    try:
        return str(response.json())
    except ValueError:
        return response.text or response.reason_phrase


def raise_for_gmail_status(response: httpx.Response) -> None:
    """Map a non-2xx Gmail response to the matching exception."""
    if response.is_success:
        return
    status = response.status_code
    detail = _error_detail(response)
    message = f"Gmail API error: {status} {response.reason_phrase} - {detail}"
    if status == 404:
        raise GmailNotFoundError(message, status)
    if status == 401:
        raise GmailAuthError(message, status)
    if status == 403:
        if any(reason in detail.lower() for reason in _RATE_LIMIT_REASONS):
            raise GmailTransientError(message, status)
        raise GmailAuthError(message, status)
    if status == 429 or status >= 500:
        raise GmailTransientError(message, status)
    raise GmailAPIError(message, status)


class GmailClient:
    """Client for the Gmail API acting on behalf of a user.

    Access tokens are refreshed a few minutes before they expire. Two
    handlers refreshing at the same time both get valid tokens; the last
    write wins in the database. Transient failures are retried with
    exponential backoff; 4xx responses are not.
    """

    def __init__(
        self,
        session: Session,
        sync_state_repository: MailboxSyncStateRepository,
        settings: Settings,
        http_client: httpx.Client | None = None,
        max_attempts: int = 3,
        retry_wait: float = 0.5,
    ) -> None:
        """Initialize the client.

        Args:
            session: Session used to commit refreshed credentials.
            sync_state_repository: Repository holding the user's credentials.
            settings: Application settings (OAuth client, URLs, timeouts).
            http_client: Optional preconfigured httpx client (for testing).
            max_attempts: Attempts for transient failures.
            retry_wait: Backoff multiplier in seconds (0 disables waiting).
        """
        self._session = session
        self._sync_state_repo = sync_state_repository
        self._settings = settings
        self._http = http_client or httpx.Client(
            timeout=httpx.Timeout(settings.gmail_timeout_seconds, connect=5.0)
        )
        self._max_attempts = max_attempts
        self._retry_wait = retry_wait

    def close(self) -> None:
        self._http.close()

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._retry_wait, max=4),
            retry=retry_if_exception_type(GmailTransientError),
            reraise=True,
        )

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        for attempt in self._retrying():
            with attempt:
                try:
                    response = self._http.request(method, url, **kwargs)
                except httpx.TransportError as e:
                    raise GmailTransientError(f"Gmail request failed: {e}") from e
                if response.status_code == 429 or response.status_code >= 500:
                    raise_for_gmail_status(response)
                return response
        raise AssertionError("unreachable")  # pragma: no cover

    # --- Credentials ---

    def get_access_token(self, user_id: str) -> str:
        """Return a usable access token, refreshing it when close to expiry.

        Raises:
            GmailCredentialsMissingError: If the user has no linked mailbox.
            GmailAuthError: If the refresh token was revoked.
        """
        state = self._sync_state_repo.find_by_user_id(user_id)
        if state is None:
            raise GmailCredentialsMissingError(f"No Gmail OAuth token found for user {user_id}")

        buffer = timedelta(seconds=self._settings.token_refresh_buffer_seconds)
        if state.expires_at > utcnow() + buffer:
            return state.access_token
        return self.refresh_access_token(user_id, state.refresh_token)

    def refresh_access_token(self, user_id: str, refresh_token: str) -> str:
        """Exchange a refresh token for a new access token and store it.

        Raises:
            GmailAuthError: If the token endpoint rejects the refresh token.
            GmailAPIError: If OAuth is not configured or the endpoint fails.
        """
        if not self._settings.gmail_client_id or not self._settings.gmail_client_secret:
            raise GmailAPIError("Gmail OAuth credentials not configured")

        response = self._send(
            "POST",
            self._settings.oauth_token_url,
            data={
                "client_id": self._settings.gmail_client_id,
                "client_secret": self._settings.gmail_client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )
        if not response.is_success:
            detail = _error_detail(response)
            message = f"Failed to refresh token: {response.status_code} - {detail}"
            if response.status_code in (400, 401) and "invalid_grant" in detail:
                raise GmailAuthError(message, response.status_code)
            raise_for_gmail_status(response)

        data = response.json()
        expires_at = utcnow() + timedelta(seconds=int(data.get("expires_in", 3600)))
        self._sync_state_repo.update_credentials(
            user_id,
            access_token=data["access_token"],
            expires_at=expires_at,
            refresh_token=data.get("refresh_token"),
        )
        self._session.commit()
        logger.info("Refreshed Gmail access token for user %s", user_id)
        return str(data["access_token"])

    def store_tokens(
        self,
        user_id: str,
        email_address: str,
        access_token: str,
        refresh_token: str,
        expires_in: int,
        scope: str,
    ) -> None:
        """Create or update the user's mailbox link after OAuth authorization."""
        expires_at = utcnow() + timedelta(seconds=expires_in)
        if self._sync_state_repo.find_by_user_id(user_id) is not None:
            self._sync_state_repo.update_credentials(
                user_id,
                access_token=access_token,
                expires_at=expires_at,
                refresh_token=refresh_token,
                email_address=email_address,
                scope=scope,
            )
        else:
            self._sync_state_repo.create(
                user_id=user_id,
                email_address=email_address,
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=expires_at,
                scope=scope,
            )
        self._session.commit()

    # --- Gmail API ---

    def _request(
        self,
        user_id: str,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        token = self.get_access_token(user_id)
        response = self._send(
            method,
            f"{self._settings.gmail_api_base_url}{endpoint}",
            params=params,
            json=json,
            headers={"Authorization": f"Bearer {token}"},
        )
        raise_for_gmail_status(response)
        if not response.content:
            return {}
        return response.json()  # type: ignore[no-any-return]

    def get_profile(self, user_id: str) -> dict[str, Any]:
        """Get the user's Gmail profile (address, totals, current history id)."""
        return self._request(user_id, "GET", "/users/me/profile")

    def get_history(
        self,
        user_id: str,
        start_history_id: str,
        page_token: str | None = None,
        max_results: int | None = None,
    ) -> HistoryPage:
        """Fetch one page of mailbox changes since ``start_history_id``.

        Raises:
            GmailNotFoundError: If the start history id is too old.
        """
        params: dict[str, Any] = {
            "startHistoryId": start_history_id,
            "maxResults": max_results or self._settings.gmail_history_page_size,
        }
        if page_token:
            params["pageToken"] = page_token
        data = self._request(user_id, "GET", "/users/me/history", params=params)
        return HistoryPage(
            history=list(data.get("history") or []),
            history_id=data.get("historyId"),
            next_page_token=data.get("nextPageToken"),
        )

    def get_message(self, user_id: str, message_id: str, format: str = "full") -> dict[str, Any]:
        """Fetch a message resource.

        Raises:
            GmailNotFoundError: If the message was deleted.
        """
        return self._request(
            user_id, "GET", f"/users/me/messages/{message_id}", params={"format": format}
        )

    def modify_message(
        self,
        user_id: str,
        message_id: str,
        add_label_ids: list[str] | None = None,
        remove_label_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        """Add or remove labels on a message."""
        body: dict[str, Any] = {}
        if add_label_ids:
            body["addLabelIds"] = add_label_ids
        if remove_label_ids:
            body["removeLabelIds"] = remove_label_ids
        return self._request(
            user_id, "POST", f"/users/me/messages/{message_id}/modify", json=body
        )

    def mark_as_read(self, user_id: str, message_id: str) -> None:
        """Remove the UNREAD label from a message."""
        self.modify_message(user_id, message_id, remove_label_ids=[UNREAD_LABEL])

    def watch(
        self, user_id: str, topic_name: str, label_ids: list[str] | None = None
    ) -> WatchRegistration:
        """Start (or renew) push notifications to a Pub/Sub topic."""
        data = self._request(
            user_id,
            "POST",
            "/users/me/watch",
            json={
                "topicName": topic_name,
                "labelIds": label_ids or [],
                "labelFilterBehavior": "include",
            },
        )
        expiration = None
        if data.get("expiration"):
            expiration = datetime(1970, 1, 1) + timedelta(milliseconds=int(data["expiration"]))
        return WatchRegistration(history_id=str(data["historyId"]), expiration=expiration)

    def stop_watch(self, user_id: str) -> None:
        """Stop push notifications for the user's mailbox."""
        self._request(user_id, "POST", "/users/me/stop")
