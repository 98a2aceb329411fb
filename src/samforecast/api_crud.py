"""FastAPI APIRouter for the purchase-order repository."""

from __future__ import annotations

import logging
import os
from typing import Any, Optional, TypeVar

from fastapi import APIRouter, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError
from slowapi import Limiter
from slowapi.util import get_remote_address

from .io import load_purchase_orders
from .repository import (
    InMemoryPurchaseOrderRepository,
    PostgresPurchaseOrderRepository,
    PurchaseOrderRepository,
    ignored_update_keys,
)

router = APIRouter(prefix="/api")
logger = logging.getLogger("samforecast.api")

# ---------------------------------------------------------------------------
# Rate limiter key: user_id from header if present, else remote IP
# ---------------------------------------------------------------------------


def get_current_user(request: Request) -> str | None:
    """Extract user ID from X-User-ID header (set by the front-end proxy)."""
    return request.headers.get("X-User-ID") or None


def _rate_key(request: Request) -> str:
    user_id = get_current_user(request)
    return f"user:{user_id}" if user_id else f"ip:{get_remote_address(request)}"


limiter = Limiter(key_func=_rate_key)


def write_limit(key: str) -> str:
    if key.startswith("user:"):
        return os.environ.get("SAMFORECAST_RATE_LIMIT", "60/minute")
    return os.environ.get("SAMFORECAST_GUEST_RATE_LIMIT", "20/minute")


# ---------------------------------------------------------------------------
# Repository wiring
# ---------------------------------------------------------------------------


def build_repository() -> PurchaseOrderRepository:
    """Pick the PO store from SAMFORECAST_STORAGE (``memory`` or ``postgres``)."""
    storage = os.environ.get("SAMFORECAST_STORAGE", "memory").strip().lower()
    if storage == "postgres":
        from . import db

        db.init_db()
        conn = db.get_connection()
        try:
            added = db.seed_purchase_orders(conn, load_purchase_orders())
        finally:
            conn.close()
        logger.info("Using PostgreSQL purchase order store (%d seeded)", added)
        return PostgresPurchaseOrderRepository()
    if storage != "memory":
        raise ValueError(f"Unknown SAMFORECAST_STORAGE: {storage!r} (expected 'memory' or 'postgres')")
    return InMemoryPurchaseOrderRepository(load_purchase_orders())


def get_repository(request: Request) -> PurchaseOrderRepository:
    repo = getattr(request.app.state, "repository", None)
    if repo is None:
        repo = build_repository()
        request.app.state.repository = repo
    return repo


def _404(item: str):
    raise HTTPException(status_code=404, detail=f"{item} not found")


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class PurchaseOrderPatch(BaseModel):
    updates: Optional[dict[str, Any]] = None
    status: Optional[str] = None


ModelT = TypeVar("ModelT", bound=BaseModel)


async def parse_json_body(request: Request, model: type[ModelT]) -> ModelT:
    """Validate the JSON request body against ``model``.

    Rate-limited routes read their body here instead of through a typed
    parameter: the limiter wraps the endpoint, and postponed annotations on
    the wrapper cannot be resolved back to models defined in this package.
    Failures surface as the usual 422 validation error.
    """
    try:
        raw = await request.json()
    except ValueError as exc:
        raise RequestValidationError(
            [{"type": "json_invalid", "loc": ("body",), "msg": "Request body must be valid JSON", "input": None}]
        ) from exc
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False)) from exc


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/purchase-orders")
def list_purchase_orders(request: Request):
    orders = get_repository(request).list()
    return {
        "success": True,
        "status": "OK",
        "purchaseOrderRows": [[f.to_dict() for f in o.fields] for o in orders],
    }


@router.get("/purchase-orders/{po_number}")
def get_purchase_order(po_number: str, request: Request):
    order = get_repository(request).get(po_number)
    if order is None:
        _404("PO")
    return order.to_dict()


@router.patch("/purchase-orders/{po_number}")
@limiter.limit(write_limit)
async def patch_purchase_order(po_number: str, request: Request):
    body = await parse_json_body(request, PurchaseOrderPatch)
    repo = get_repository(request)
    current = repo.get(po_number)
    if current is None:
        _404("PO")
    ignored = ignored_update_keys(current, body.updates)
    updated = repo.update(po_number, body.updates, body.status)
    if updated is None:
        _404("PO")
    logger.info("PO %s updated by %s", po_number, get_current_user(request) or "anonymous")
    return {"success": True, "purchaseOrder": updated.to_dict(), "ignored": ignored}
