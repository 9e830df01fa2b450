"""FastAPI dependencies for request validation and common operations.

This module provides reusable FastAPI dependencies for:
- Settings and app.state access (UoW factory, dispatcher)
- Bearer token validation for the cron-invoked dispatch endpoint
"""

import hmac
from typing import Annotated, Callable

from fastapi import Depends, Header, HTTPException, Request, status

from geoscale.core.config import Settings
from geoscale.uow import UnitOfWork
from geoscale.workers.dispatcher import Dispatcher


def get_settings(request: Request) -> Settings:
    """Get the settings instance loaded at startup.

    Returns:
        Settings stored on app.state by the lifespan handler
    """
    return request.app.state.settings


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.post("/jobs")
        >>> async def enqueue(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.jobs.add_many(jobs)
    """
    return request.app.state.uow_factory


def get_dispatcher(request: Request) -> Dispatcher:
    """Get the Dispatcher wired at startup from app state."""
    return request.app.state.dispatcher


async def verify_dispatch_token(
    authorization: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
) -> None:
    """Validate the bearer token sent by the cron trigger.

    The check is disabled when DISPATCH_SECRET is empty (development and tests).

    Raises:
        HTTPException: 401 Unauthorized if the header is missing or the token is wrong
    """
    if not settings.dispatch_secret:
        return

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token"
        )

    token = authorization.removeprefix("Bearer ").strip()
    # Constant-time comparison
    if not hmac.compare_digest(token.encode(), settings.dispatch_secret.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
