"""Bounded waits for blocking calls."""

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import TypeVar

from sqlalchemy.orm import Session

T = TypeVar("T")

SessionFactory = Callable[[], Session]

_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="lookup")


class LookupTimeoutError(Exception):
    """Raised when a bounded call does not finish in time."""

    pass


def call_with_timeout(func: Callable[[], T], timeout: float, label: str = "lookup") -> T:
    """Run a blocking call and give up waiting after ``timeout`` seconds.

    The call keeps running in its worker thread after a timeout; the caller
    just stops waiting for it. Exceptions raised by the call propagate.

    Args:
        func: Zero-argument callable to run.
        timeout: Seconds to wait before raising.
        label: Name used in the timeout message.

    Returns:
        The callable's return value.

    Raises:
        LookupTimeoutError: If the call did not complete within ``timeout``.
    """
    future = _executor.submit(func)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as e:
        future.cancel()
        raise LookupTimeoutError(f"{label} timed out after {timeout:g}s") from e


def query_with_timeout(
    session_factory: SessionFactory,
    query: Callable[[Session], T],
    timeout: float,
    label: str = "lookup",
) -> T:
    """Run a read-only query on a session of its own, bounded by ``timeout``.

    The worker opens and closes its own session, so a query abandoned after a
    timeout never shares a session with the caller. ``query`` should return
    plain values (ids, flags) rather than ORM instances, which would be
    detached from the caller's session.

    Args:
        session_factory: Callable returning a new session.
        query: Function running the query against that session.
        timeout: Seconds to wait before raising.
        label: Name used in the timeout message.

    Raises:
        LookupTimeoutError: If the query did not complete within ``timeout``.
    """

    def run() -> T:
        session = session_factory()
        try:
            return query(session)
        finally:
            session.close()

    return call_with_timeout(run, timeout, label=label)
