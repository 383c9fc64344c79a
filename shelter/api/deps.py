# shelter/api/deps.py
import asyncio
import logging
from typing import Awaitable, TypeVar

from fastapi import HTTPException, Request, status

from shelter.core.store import InventoryStore
from shelter.services.errors import BulkOperationAborted, ConfirmationRequiredError, ShelterError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_store(request: Request) -> InventoryStore:
    """
    The Inventory Store opened by the application lifespan.
    """
    return request.app.state.store


def http_error(e: ShelterError) -> HTTPException:
    if isinstance(e, ConfirmationRequiredError):
        detail = {"message": e.message, "plan": e.plan.model_dump(mode="json")}
    elif isinstance(e, BulkOperationAborted):
        detail = {"message": e.message, "outcome": e.outcome.model_dump(mode="json")}
    else:
        detail = e.message
    return HTTPException(status_code=e.status_code, detail=detail)


def bad_request(e: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


async def within_page_load(store: InventoryStore, loader: Awaitable[T]) -> T:
    """Bound an initial page-load read; a timeout becomes 504."""
    timeout = store.settings.page_load_timeout_seconds
    try:
        return await asyncio.wait_for(loader, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Page load read timed out after {timeout}s")
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Data fetch timeout",
        )
