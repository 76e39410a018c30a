"""FastAPI application for price comparison, monitoring and history."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Path, Query, Request
from pydantic import BaseModel, Field

from pricehub.errors import AggregationError, UnknownRetailerError
from pricehub.pricing.normalize import product_key as make_product_key
from pricehub.retailers.models import Country
from pricehub.services import Services, build_services
from pricehub.settings import Settings
from pricehub.utils.dates import TIMEFRAMES
from pricehub.utils.log import configure_logging

logger = logging.getLogger(__name__)

PRODUCT_KEY_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"


class CompareRequest(BaseModel):
    search_term: str = Field(min_length=1, max_length=200)
    product_key: str | None = Field(default=None, pattern=PRODUCT_KEY_PATTERN)
    country: Country | None = None


class SingleRequest(BaseModel):
    retailer: str = Field(min_length=1)
    product_url: str | None = None
    search_term: str | None = Field(default=None, max_length=200)


class BulkItem(BaseModel):
    search_term: str = Field(min_length=1, max_length=200)
    product_key: str | None = Field(default=None, pattern=PRODUCT_KEY_PATTERN)


class BulkCompareRequest(BaseModel):
    products: list[BulkItem] = Field(min_length=1, max_length=10)
    country: Country | None = None


class MonitorStartRequest(BaseModel):
    product_key: str = Field(pattern=PRODUCT_KEY_PATTERN)
    search_term: str = Field(min_length=1, max_length=200)
    owner_id: str = Field(min_length=1, max_length=128)
    threshold: float | None = Field(default=None, gt=0, le=100)


class MonitorStopRequest(BaseModel):
    product_key: str = Field(pattern=PRODUCT_KEY_PATTERN)
    owner_id: str = Field(min_length=1, max_length=128)


def get_services(request: Request) -> Services:
    return request.app.state.services


router = APIRouter(prefix="/prices")


@router.post("/compare")
async def compare(payload: CompareRequest, services: Services = Depends(get_services)) -> dict[str, Any]:
    key = payload.product_key or make_product_key(payload.search_term)
    country = payload.country.value if payload.country else None
    cached = await services.cache.get_comparison(key, country)
    if cached is not None:
        return {**cached.to_dict(), "from_cache": True}
    try:
        result = await services.aggregator.compare(payload.search_term, product_key=key, country=payload.country)
    except (AggregationError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    await services.cache.set_comparison(result)
    return {**result.to_dict(), "from_cache": False}


@router.post("/single")
async def single(payload: SingleRequest, services: Services = Depends(get_services)) -> dict[str, Any]:
    try:
        price = await services.aggregator.fetch_single(
            payload.retailer,
            product_url=payload.product_url,
            search_term=payload.search_term,
        )
    except UnknownRetailerError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except AggregationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if price is None:
        raise HTTPException(status_code=404, detail="Product not found or price unavailable")
    return {"price": price.to_dict()}


@router.post("/bulk-compare")
async def bulk_compare(payload: BulkCompareRequest, services: Services = Depends(get_services)) -> dict[str, Any]:
    try:
        entries = await services.aggregator.compare_many(
            [item.model_dump() for item in payload.products],
            country=payload.country,
        )
    except AggregationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    results = []
    for entry in entries:
        result = entry.pop("result")
        entry["comparison"] = result.to_dict() if result is not None else None
        results.append(entry)
    return {"results": results}


@router.get("/retailers")
async def retailers(services: Services = Depends(get_services)) -> dict[str, Any]:
    grouped: dict[str, list[dict[str, Any]]] = {country.value: [] for country in Country}
    for config in services.registry.list():
        grouped[config.country.value].append(
            {
                "name": config.name,
                "country": config.country.value,
                "currency": config.currency.value,
                "access_method": config.access_method.value,
                "base_url": config.base_url,
                "rate_limit_per_minute": config.rate_limit_per_minute,
            }
        )
    return {"retailers": grouped, "total": len(services.registry)}


@router.post("/monitor/start")
async def monitor_start(payload: MonitorStartRequest, services: Services = Depends(get_services)) -> dict[str, Any]:
    monitor = services.monitor
    limit = services.settings.monitor_max_per_owner
    existing = monitor.get(payload.owner_id, payload.product_key)
    if existing is None and len(monitor.active_for(payload.owner_id)) >= limit:
        raise HTTPException(status_code=429, detail=f"At most {limit} products can be monitored at once")
    try:
        subscription = monitor.start(
            payload.product_key, payload.search_term, payload.owner_id, payload.threshold
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"subscription_id": subscription.subscription_id, "active": True, "subscription": subscription.to_dict()}


@router.post("/monitor/stop")
async def monitor_stop(payload: MonitorStopRequest, services: Services = Depends(get_services)) -> dict[str, Any]:
    stopped = services.monitor.stop(payload.product_key, payload.owner_id)
    return {"product_key": payload.product_key, "active": False, "stopped": stopped}


@router.get("/monitor/active")
async def monitor_active(
    owner_id: str = Query(..., min_length=1), services: Services = Depends(get_services)
) -> dict[str, Any]:
    subscriptions = services.monitor.active_for(owner_id)
    return {"subscriptions": [sub.to_dict() for sub in subscriptions], "count": len(subscriptions)}


@router.get("/history/{product_key}")
async def history(
    product_key: str = Path(..., pattern=PRODUCT_KEY_PATTERN),
    timeframe: str = Query("30d"),
    retailer: str | None = Query(None),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    if timeframe not in TIMEFRAMES:
        raise HTTPException(status_code=400, detail=f"timeframe must be one of {', '.join(TIMEFRAMES)}")
    points = await services.cache.get_history(product_key, timeframe, retailer)
    from_cache = points is not None
    if points is None:
        points = await services.history.load(product_key, timeframe, retailer) if services.history else []
        await services.cache.set_history(product_key, timeframe, retailer, points)
    return {
        "product_key": product_key,
        "timeframe": timeframe,
        "retailer": retailer,
        "points": [point.to_dict() for point in points],
        "from_cache": from_cache,
    }


def create_app(services: Services | None = None) -> FastAPI:
    """Build the app; without ``services`` they are built from the environment on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = app.state.services is None
        if owned:
            load_dotenv()
            settings = Settings.from_env()
            configure_logging(settings.log_level)
            app.state.services = build_services(settings)
        try:
            yield
        finally:
            if owned:
                await app.state.services.shutdown()
                app.state.services = None

    app = FastAPI(title="PriceHub API", lifespan=lifespan)
    app.state.services = services
    app.include_router(router)

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        current: Services = request.app.state.services
        return {
            "status": "ok",
            "retailers": len(current.registry),
            "watched_products": len(current.monitor.watched_products()),
            "render_pool": {
                "open": current.pool.open_count,
                "idle": current.pool.idle_count,
                "peak": current.pool.peak_open,
            },
        }

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("pricehub.api.main:app", host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
