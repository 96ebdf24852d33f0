import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel, Field
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import limiter, sync_rate_limit, require_api_key
from .config import SyncSettings
from .connectors.stripe_connector import StripePaymentIntentAdapter, StripePaymentIntentMapper
from .contract import SyncContract
from .database import close_db, get_db, init_db
from .errors import FetchCancelledError, SyncError
from .services import SyncService

logger = logging.getLogger(__name__)


def _stripe_payments(settings: SyncSettings) -> SyncContract:
    return SyncContract.for_source(
        StripePaymentIntentAdapter(),
        StripePaymentIntentMapper(),
        settings=settings,
        name="stripe/payments",
    )


# Provider -> resource -> contract factory. Contracts are built per request
# so credentials are read when the stream runs.
CONNECTORS: Dict[str, Dict[str, Callable[[SyncSettings], SyncContract]]] = {
    "stripe": {"payments": _stripe_payments},
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await close_db()


app = FastAPI(title="Payments Sync - Reference API", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


class FetchNextBody(BaseModel):
    page_size: Optional[int] = Field(default=None, gt=0)
    from_payload: Optional[Dict[str, Any]] = None
    drain: bool = False
    max_calls: Optional[int] = Field(default=None, gt=0)


def _contract_for(provider: str, resource: str, settings: SyncSettings) -> SyncContract:
    resources = CONNECTORS.get(provider)
    if resources is None:
        raise HTTPException(status_code=400, detail="Provider not supported")
    factory = resources.get(resource)
    if factory is None:
        raise HTTPException(status_code=404, detail=f"Unknown resource '{resource}' for {provider}")
    try:
        return factory(settings)
    except ValueError as e:
        logger.error(f"Cannot build {provider}/{resource} source: {e}")
        raise HTTPException(status_code=500, detail="Connector configuration error")


DISCONNECT_POLL_SECONDS = 0.5


async def _cancel_on_disconnect(
    request: Request,
    cancel_event: threading.Event,
    interval: float = DISCONNECT_POLL_SECONDS,
) -> None:
    """Set ``cancel_event`` once the client has gone away."""
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.warning(f"Client disconnected from {request.url.path}, cancelling sync")
            cancel_event.set()
            return
        await asyncio.sleep(interval)


@app.post("/streams/{connector_id}/{resource}/fetch-next")
@limiter.limit(sync_rate_limit)
async def fetch_next(
    request: Request,
    connector_id: str,
    resource: str,
    body: FetchNextBody,
    x_provider: Optional[str] = Header("stripe"),
    db: AsyncSession = Depends(get_db),
    api_key: str = Depends(require_api_key),
):
    settings = SyncSettings.from_env()
    contract = _contract_for(x_provider, resource, settings)
    service = SyncService(db, settings=settings)
    cancel_event = threading.Event()
    watcher = asyncio.create_task(_cancel_on_disconnect(request, cancel_event))
    try:
        if body.drain:
            result = await service.drain(
                connector_id,
                resource,
                contract,
                page_size=body.page_size,
                from_payload=body.from_payload,
                max_calls=body.max_calls,
                cancel_event=cancel_event,
            )
        else:
            result = await service.run_once(
                connector_id,
                resource,
                contract,
                page_size=body.page_size,
                from_payload=body.from_payload,
                cancel_event=cancel_event,
            )
    except FetchCancelledError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except SyncError as e:
        # Bad state, unmappable record or missing source context
        raise HTTPException(status_code=400, detail=str(e))
    except (ConnectionError, TimeoutError, RuntimeError) as e:
        logger.error(f"Upstream failure for {connector_id}/{resource}: {e}")
        raise HTTPException(status_code=502, detail=f"Upstream error: {e}")
    except ValueError as e:
        # Rejected credentials or other connector misconfiguration
        logger.error(f"Connector configuration error for {connector_id}/{resource}: {e}")
        raise HTTPException(status_code=500, detail="Connector configuration error")
    finally:
        watcher.cancel()

    state = await service.get_state(connector_id, resource)
    return {**result.model_dump(), "state": state.to_dict() if state else None}


@app.get("/streams/{connector_id}/{resource}/state")
async def get_stream_state(
    connector_id: str,
    resource: str,
    db: AsyncSession = Depends(get_db),
    api_key: str = Depends(require_api_key),
):
    service = SyncService(db, settings=SyncSettings.from_env())
    state = await service.get_state(connector_id, resource)
    if state is None:
        raise HTTPException(status_code=404, detail="Stream has never been synced")
    return state.to_dict()


@app.delete("/streams/{connector_id}/{resource}/state")
async def reset_stream_state(
    connector_id: str,
    resource: str,
    db: AsyncSession = Depends(get_db),
    api_key: str = Depends(require_api_key),
):
    service = SyncService(db, settings=SyncSettings.from_env())
    return {"reset": await service.reset(connector_id, resource)}
