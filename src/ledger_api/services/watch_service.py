"""Gmail watch registration and the periodic watch resync."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from ledger_api.core.config import Settings
from ledger_api.repositories.mailbox_sync_state_repository import (
    MailboxSyncStateRepository,
)
from ledger_api.services.gmail_client import GmailClient, WatchRegistration

logger = logging.getLogger(__name__)


class GmailWatchService:
    """Registers and stops Gmail push notifications for a user."""

    def __init__(
        self,
        session: Session,
        sync_state_repository: MailboxSyncStateRepository,
        gmail_client: GmailClient,
        settings: Settings,
    ) -> None:
        self._session = session
        self._sync_state_repo = sync_state_repository
        self._gmail = gmail_client
        self._settings = settings

    def start_watch(
        self,
        user_id: str,
        topic_name: str | None = None,
        label_ids: list[str] | None = None,
    ) -> WatchRegistration:
        """Register (or renew) the watch and store its starting cursor.

        This is the only place the history cursor may move backwards.

        Args:
            user_id: Owner of the mailbox.
            topic_name: Pub/Sub topic; defaults to the configured topic.
            label_ids: Labels to watch; defaults to the stored watch labels.

        Raises:
            ValueError: If no topic is given or configured.
            GmailCredentialsMissingError: If the user has no linked mailbox.
            GmailAPIError: If the watch call fails.
        """
        topic = topic_name or self._settings.gmail_pubsub_topic
        if not topic:
            raise ValueError("No Pub/Sub topic configured for Gmail watch")

        if label_ids is None:
            state = self._sync_state_repo.find_by_user_id(user_id)
            label_ids = list(state.watch_label_ids or []) if state is not None else []

        registration = self._gmail.watch(user_id, topic, label_ids)
        self._sync_state_repo.reset_history_id(
            user_id,
            registration.history_id,
            watch_expiration=registration.expiration,
            label_ids=label_ids,
        )
        self._session.commit()
        logger.info(
            "Watch registered for user %s at history %s (expires %s)",
            user_id,
            registration.history_id,
            registration.expiration,
        )
        return registration

    def stop_watch(self, user_id: str) -> None:
        """Stop push notifications for the user's mailbox."""
        self._gmail.stop_watch(user_id)
        state = self._sync_state_repo.find_by_user_id(user_id)
        if state is not None:
            state.watch_expiration = None
            self._session.commit()
        logger.info("Watch stopped for user %s", user_id)


RenewWatch = Callable[[str, str | None, list[str] | None], object]


@dataclass
class _ResyncJob:
    topic_name: str | None
    label_ids: list[str] | None
    stopped: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task[None] | None = None


class WatchResyncScheduler:
    """Renews each user's Gmail watch on a fixed interval.

    One job runs per user; starting a job for a user who already has one
    replaces it. ``renew`` is a blocking callable run in a worker thread
    with its own database session.
    """

    def __init__(self, renew: RenewWatch, interval_seconds: float) -> None:
        self._renew = renew
        self._interval = interval_seconds
        self._jobs: dict[str, _ResyncJob] = {}

    def is_running(self, user_id: str) -> bool:
        job = self._jobs.get(user_id)
        return job is not None and job.task is not None and not job.task.done()

    def start(
        self,
        user_id: str,
        topic_name: str | None = None,
        label_ids: list[str] | None = None,
    ) -> None:
        """Start the resync job for a user, replacing any running one.

        Must be called from a running event loop.
        """
        self.stop(user_id)
        job = _ResyncJob(topic_name=topic_name, label_ids=label_ids)
        job.task = asyncio.get_running_loop().create_task(
            self._run(user_id, job), name=f"watch-resync-{user_id}"
        )
        self._jobs[user_id] = job
        logger.info("Watch resync started for user %s every %ss", user_id, self._interval)

    def stop(self, user_id: str) -> bool:
        """Stop the user's resync job. Returns False if none was running."""
        job = self._jobs.pop(user_id, None)
        if job is None:
            return False
        job.stopped.set()
        if job.task is not None:
            job.task.cancel()
        logger.info("Watch resync stopped for user %s", user_id)
        return True

    async def shutdown(self) -> None:
        """Stop every job and wait for them to finish."""
        jobs = list(self._jobs.values())
        self._jobs.clear()
        for job in jobs:
            job.stopped.set()
            if job.task is not None:
                job.task.cancel()
        await asyncio.gather(*(j.task for j in jobs if j.task is not None), return_exceptions=True)

    async def _run(self, user_id: str, job: _ResyncJob) -> None:
        while not await self._wait_stopped(job):
            try:
                await asyncio.to_thread(self._renew, user_id, job.topic_name, job.label_ids)
                logger.info("Renewed Gmail watch for user %s", user_id)
            except Exception:
                logger.exception("Gmail watch renewal failed for user %s", user_id)

    async def _wait_stopped(self, job: _ResyncJob) -> bool:
        try:
            await asyncio.wait_for(job.stopped.wait(), timeout=self._interval)
        except TimeoutError:
            return False
        return True
