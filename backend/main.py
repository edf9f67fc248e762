"""
Venue Pricing API - FastAPI service wrapping the booking discount engine.

Endpoints:
  POST /api/v1/discounts/calculate           - price a booking against an inline discount config.
  POST /api/v1/guest-price                   - resolve a guest-count tier price.
  POST /api/v1/services/{service_id}/quote   - quote a booking of a stored venue service.
  GET  /api/v1/services/{service_id}/discounts - discount offers a service advertises.
  GET  /api/v1/services/{service_id}/discount-config - stored discount rules, normalized.
  GET  /health                               - liveness check.
"""

from __future__ import annotations

import logging
import os
import traceback
from functools import lru_cache
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from supabase import Client

load_dotenv()

from pricing.core import db as db_helpers
from pricing.core.booking_quote import describe_discount_offers, quote_service_booking
from pricing.core.discount_engine import calculate_discount
from pricing.core.errors import InvalidPricingRequest, NoApplicablePrice
from pricing.core.guest_pricing import get_max_guest_count, resolve_guest_price

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(message)s",
)
logger = logging.getLogger("venue_pricing")

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(title="Venue Pricing API", version="1.0.0")

ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in ALLOWED_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_TIME_PATTERN = r"^\d{1,2}:\d{2}$"

# ---------------------------------------------------------------------------
# Request / Response schemas (Pydantic)
# ---------------------------------------------------------------------------


class DiscountCalculationRequest(BaseModel):
    base_price: float = Field(..., gt=0, description="Pre-discount total for the whole duration")
    duration_hours: float = Field(..., gt=0)
    guest_count: int = Field(default=1, ge=1)
    booking_start_time: Optional[str] = Field(default=None, description="HH:MM")
    booking_end_time: Optional[str] = Field(default=None, description="HH:MM")
    service_id: Optional[str] = None
    # Raw stored shape; resolve_discount_config drops malformed rules.
    discount_config: Optional[Dict[str, Any]] = Field(
        default=None,
        description="overallDiscountPercent / groupDiscounts / timeslotDiscounts / freeHourDiscounts",
    )


class DiscountResultOut(BaseModel):
    originalPrice: float
    finalPrice: float
    totalSavings: float
    appliedDiscounts: List[str]
    discountBreakdown: Dict[str, float]
    paidHours: float


class GuestPriceRequest(BaseModel):
    service_type: Optional[str] = None
    price: float = Field(..., ge=0, description="Per-table or legacy per-guest price")
    guest_pricing_rules: Optional[List[Dict[str, Any]]] = None
    guest_count: int = Field(..., ge=1)


class GuestPriceResponse(BaseModel):
    guest_count: int
    price: float
    max_guests: Optional[int] = None


class TableIn(BaseModel):
    table_number: int = Field(..., ge=1)
    guest_count: int = Field(..., ge=1)


class QuoteRequest(BaseModel):
    arrival_time: str = Field(..., pattern=_TIME_PATTERN, description="HH:MM")
    departure_time: str = Field(..., pattern=_TIME_PATTERN, description="HH:MM")
    tables: Optional[List[TableIn]] = None
    guest_count: Optional[int] = Field(default=None, ge=1)


class QuoteResponse(BaseModel):
    serviceId: Optional[str] = None
    arrivalTime: str
    departureTime: str
    durationHours: float
    guestCount: int
    tablePrices: List[float]
    basePrice: float
    totalPrice: float
    discount: DiscountResultOut


class DiscountOfferOut(BaseModel):
    type: str
    label: str
    description: str
    percent: Optional[float] = None
    minGuests: Optional[int] = None
    freeHours: Optional[float] = None


class DiscountOffersResponse(BaseModel):
    serviceId: str
    offers: List[DiscountOfferOut]


class DiscountConfigResponse(BaseModel):
    serviceId: str
    hasDiscounts: bool
    config: Dict[str, Any]


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _supabase_client() -> Client:
    return db_helpers.get_client()


def get_supabase() -> Client:
    try:
        return _supabase_client()
    except Exception as exc:
        logger.error(f"Supabase client unavailable: {exc}\n{traceback.format_exc()}")
        raise HTTPException(status_code=500, detail=f"Database unavailable: {str(exc)}")


def _load_service(client: Client, service_id: str) -> Dict[str, Any]:
    service = db_helpers.fetch_service(client, service_id)
    if service is None:
        raise HTTPException(status_code=404, detail=f"Service {service_id} not found")
    return service


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health")
def health():
    return {"status": "ok", "service": "venue-pricing"}


@app.post("/api/v1/discounts/calculate", response_model=DiscountResultOut)
def calculate(req: DiscountCalculationRequest):
    """Apply a discount configuration to a booking's base price."""
    try:
        result = calculate_discount(
            req.base_price,
            req.duration_hours,
            req.guest_count,
            req.discount_config,
            booking_start_time=req.booking_start_time,
            booking_end_time=req.booking_end_time,
            service_id=req.service_id,
        )
    except InvalidPricingRequest as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return DiscountResultOut(**result.to_dict())


@app.post("/api/v1/guest-price", response_model=GuestPriceResponse)
def guest_price(req: GuestPriceRequest):
    price = resolve_guest_price(
        req.service_type, req.price, req.guest_pricing_rules, req.guest_count
    )
    if price is None:
        raise HTTPException(status_code=422, detail=str(NoApplicablePrice(req.guest_count)))
    return GuestPriceResponse(
        guest_count=req.guest_count,
        price=price,
        max_guests=get_max_guest_count(req.guest_pricing_rules),
    )


@app.post("/api/v1/services/{service_id}/quote", response_model=QuoteResponse)
def quote(service_id: str, req: QuoteRequest, client: Client = Depends(get_supabase)):
    """
    Quote a booking of a stored service: guest-tier base price over the
    booking window, then the service's discounts.
    """
    try:
        service = _load_service(client, service_id)
        result = quote_service_booking(
            service,
            req.arrival_time,
            req.departure_time,
            tables=[t.model_dump() for t in req.tables] if req.tables else None,
            guest_count=req.guest_count,
        )
        return QuoteResponse(**result.to_dict())
    except HTTPException:
        raise
    except (InvalidPricingRequest, NoApplicablePrice) as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except Exception as exc:
        logger.error(f"Quote failed for service {service_id}: {exc}\n{traceback.format_exc()}")
        raise HTTPException(
            status_code=500,
            detail=f"Quote failed: {str(exc)}",
        )


@app.get("/api/v1/services/{service_id}/discounts", response_model=DiscountOffersResponse)
def service_discounts(service_id: str, client: Client = Depends(get_supabase)):
    try:
        service = _load_service(client, service_id)
    except HTTPException:
        raise
    except Exception as exc:
        logger.error(f"Loading service {service_id} failed: {exc}\n{traceback.format_exc()}")
        raise HTTPException(status_code=500, detail=f"Loading service failed: {str(exc)}")
    return DiscountOffersResponse(
        serviceId=service_id,
        offers=[DiscountOfferOut(**offer) for offer in describe_discount_offers(service)],
    )


@app.get("/api/v1/services/{service_id}/discount-config", response_model=DiscountConfigResponse)
def service_discount_config(service_id: str, client: Client = Depends(get_supabase)):
    """Normalized discount rules of a service; empty when the service is unknown."""
    try:
        config = db_helpers.fetch_discount_config(client, service_id)
    except Exception as exc:
        logger.error(f"Loading discount config for {service_id} failed: {exc}\n{traceback.format_exc()}")
        raise HTTPException(status_code=500, detail=f"Loading discount config failed: {str(exc)}")
    return DiscountConfigResponse(
        serviceId=service_id,
        hasDiscounts=not config.is_empty,
        config=config.to_dict(),
    )
