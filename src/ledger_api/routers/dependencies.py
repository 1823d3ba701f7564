"""Shared FastAPI dependencies for the v1 routers."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from ledger_api.services.watch_service import WatchResyncScheduler


def get_current_user_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
) -> str:
    """Caller identity, set by the authenticating proxy."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header"
        )
    return x_user_id.strip()


def get_watch_scheduler(request: Request) -> WatchResyncScheduler:
    """The application's watch resync scheduler."""
    return request.app.state.watch_scheduler  # type: ignore[no-any-return]


CurrentUserId = Annotated[str, Depends(get_current_user_id)]
WatchScheduler = Annotated[WatchResyncScheduler, Depends(get_watch_scheduler)]
