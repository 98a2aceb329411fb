from __future__ import annotations

import json
import logging
import os
import time
import uuid
from typing import Any, Optional

import pandas as pd
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from slowapi.errors import RateLimitExceeded

from . import __version__
from .api_crud import get_repository, limiter, parse_json_body, router as crud_router, write_limit
from .config import ForecastConfig, default_forecast_config
from .model import (
    ForecastEdit,
    ForecastEditError,
    LockedPeriodError,
    UnknownPeriodError,
    apply_forecast_edits,
    forecast_kpis,
    quarterly_rollup,
    yearly_rollup,
)
from .synth import generate_monthly_forecasts, generate_po_financials
from .types import MonthlyForecast

logger = logging.getLogger("samforecast.api")

app = FastAPI(title="SAM PO Forecast API", version=__version__)
app.state.limiter = limiter


def _request_id_from_request(request: Request) -> str:
    return getattr(request.state, "request_id", "") or request.headers.get("X-Request-ID", "")


def _http_error_code(status_code: int) -> str:
    return {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        422: "validation_error",
        429: "rate_limited",
        500: "internal_error",
        503: "service_unavailable",
    }.get(status_code, "http_error")


def _error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    detail: object,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": detail,
            "error": {
                "code": code,
                "message": message,
                "request_id": _request_id_from_request(request),
            },
        },
    )


@app.exception_handler(RateLimitExceeded)
async def _rate_limit_exception_handler(request: Request, _: RateLimitExceeded) -> JSONResponse:
    return _error_response(
        request,
        status_code=429,
        code="rate_limited",
        message="Rate limit exceeded",
        detail="Rate limit exceeded",
    )


@app.exception_handler(HTTPException)
async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict):
        message = str(detail.get("message") or detail.get("detail") or "Request failed")
    else:
        message = str(detail)
    return _error_response(
        request,
        status_code=exc.status_code,
        code=_http_error_code(exc.status_code),
        message=message,
        detail=detail,
    )


@app.exception_handler(RequestValidationError)
async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(
        request,
        status_code=422,
        code="validation_error",
        message="Request validation failed",
        detail=json.loads(json.dumps(exc.errors(), default=str)),
    )


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled server exception rid=%s method=%s path=%s",
        _request_id_from_request(request),
        request.method,
        request.url.path,
    )
    return _error_response(
        request,
        status_code=500,
        code="internal_error",
        message="Internal server error",
        detail="Internal server error",
    )


@app.middleware("http")
async def _request_context_middleware(request: Request, call_next):
    request.state.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000.0
    response.headers["X-Request-ID"] = request.state.request_id
    logger.info(
        "%s %s -> %s in %.2fms rid=%s",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
        request.state.request_id,
    )
    return response


# ALLOWED_ORIGINS: comma-separated list of allowed origins, e.g.
#   ALLOWED_ORIGINS=https://sam.example.com,http://localhost:3000
_default_origins = "http://localhost:3000,http://127.0.0.1:3000"
_origins_env = os.environ.get("ALLOWED_ORIGINS", _default_origins)
_allowed_origins = [o.strip() for o in _origins_env.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(crud_router)


def get_forecast_config(request: Request) -> ForecastConfig:
    cfg = getattr(request.app.state, "forecast_config", None)
    if cfg is None:
        path = os.environ.get("SAMFORECAST_CONFIG")
        cfg = ForecastConfig.from_yaml(path) if path else default_forecast_config()
        request.app.state.forecast_config = cfg
    return cfg


@app.get("/")
def root():
    return {"ok": True}


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/readyz")
def readyz(request: Request):
    try:
        get_repository(request).list()
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"Storage unavailable: {exc.__class__.__name__}") from exc
    return {"ok": True}


# ---------------------------------------------------------------------------
# Forecast views
# ---------------------------------------------------------------------------


def _po_id(po_id: str) -> str:
    po_id = po_id.strip()
    if not po_id:
        raise HTTPException(status_code=400, detail="PO ID is required")
    return po_id


def _records(df: pd.DataFrame) -> list[dict[str, Any]]:
    df = df.rename(columns={"fiscal_year": "fiscalYear"})
    return json.loads(df.to_json(orient="records"))


def _float_or_none(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _forecast_view(request: Request, po_id: str, monthly: list[MonthlyForecast]) -> dict[str, Any]:
    cfg = get_forecast_config(request)
    order = get_repository(request).get(po_id)
    kpis = forecast_kpis(monthly, cfg.variance_thresholds)
    return {
        "poNumber": po_id,
        "vendor": order.value("VENDOR_NAME") if order else None,
        "totalAmount": _float_or_none(order.value("TOTAL_AMOUNT_USD")) if order else None,
        "startDate": order.value("PO_START_DATE") if order else None,
        "endDate": order.value("PO_END_DATE") if order else None,
        "currency": "USD",
        "monthlyForecasts": [m.to_dict() for m in monthly],
        "quarterly": _records(quarterly_rollup(monthly, cfg.variance_thresholds)),
        "yearly": _records(yearly_rollup(monthly, cfg.variance_thresholds)),
        "kpis": {
            "totalForecast": kpis["total_forecast"],
            "actualsToDate": kpis["actuals_to_date"],
            "remainingForecast": kpis["remaining_forecast"],
            "averageVariance": kpis["average_variance"],
            "averageVarianceClassification": kpis["average_variance_classification"],
        },
    }


@app.get("/api/financial-portfolio/{po_id}/details")
def po_details(po_id: str, request: Request):
    financials = generate_po_financials(_po_id(po_id), get_forecast_config(request))
    return financials.to_dict()


@app.get("/api/financial-portfolio/{po_id}/forecast")
def po_forecast(po_id: str, request: Request):
    po_id = _po_id(po_id)
    monthly = generate_monthly_forecasts(po_id, get_forecast_config(request))
    return _forecast_view(request, po_id, monthly)


class ForecastEditIn(BaseModel):
    target: str
    value: float


class ForecastUpdate(BaseModel):
    updates: list[ForecastEditIn] = []
    modifiedBy: Optional[str] = None


@app.put("/api/financial-portfolio/{po_id}/forecast")
@limiter.limit(write_limit)
async def update_po_forecast(po_id: str, request: Request):
    po_id = _po_id(po_id)
    body = await parse_json_body(request, ForecastUpdate)
    editor = body.modifiedBy or request.headers.get("X-User-ID") or "User"
    monthly = generate_monthly_forecasts(po_id, get_forecast_config(request))
    try:
        monthly = apply_forecast_edits(
            monthly,
            [ForecastEdit(target=e.target, value=e.value) for e in body.updates],
            modified_by=editor,
        )
    except LockedPeriodError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except UnknownPeriodError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ForecastEditError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    logger.info("Forecast for %s updated by %s (%d edits)", po_id, editor, len(body.updates))
    view = _forecast_view(request, po_id, monthly)
    view.update(
        {
            "success": True,
            "message": "Forecast updated successfully",
            "updatedRecords": len(body.updates),
        }
    )
    return view
