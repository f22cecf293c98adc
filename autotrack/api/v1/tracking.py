import logging
from typing import TypeVar

from fastapi import APIRouter, Depends, Request, Response
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from autotrack.api.deps import get_cache, get_rate_limiter
from autotrack.core.cache import AggregationCache
from autotrack.core.classifier import should_reject
from autotrack.core.client import client_ip, detect_country
from autotrack.core.config import settings
from autotrack.core.exceptions import RateLimitExceededError
from autotrack.core.limiter import TrackingRateLimiter
from autotrack.db.session import get_db
from autotrack.schemas.tracking import (
    PageViewIn,
    PageViewResponse,
    ProductViewIn,
    SocialClickData,
    TrackEventIn,
    TrackResponse,
)
from autotrack.services.tracking_service import (
    SOCIAL_CLICK_EVENT,
    TrackOutcome,
    TrackingService,
)

logger = logging.getLogger(__name__)

router = APIRouter()

ModelT = TypeVar("ModelT", bound=BaseModel)


async def _parse_body(request: Request, model: type[ModelT]) -> ModelT:
    """Validate the raw body as JSON regardless of Content-Type.

    ``navigator.sendBeacon`` posts strings as text/plain, which FastAPI's
    body parsing would refuse.
    """
    body = await request.body()
    try:
        return model.model_validate_json(body)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False)) from None


async def _admit(request: Request, rate_limiter: TrackingRateLimiter) -> bool:
    """Classify then rate limit. False means accept the request but record nothing."""
    ip = client_ip(request)
    if should_reject(request.headers.get("user-agent"), ip):
        return False
    if not await rate_limiter.hit(ip):
        raise RateLimitExceededError()
    return True


def _set_visitor_cookie(response: Response, visitor_id: str) -> None:
    response.set_cookie(
        key=settings.VISITOR_COOKIE_NAME,
        value=visitor_id,
        max_age=settings.VISITOR_COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite=settings.COOKIE_SAMESITE,  # type: ignore[arg-type]
        domain=settings.COOKIE_DOMAIN,
        path=settings.COOKIE_PATH,
    )


@router.post("/page-view", response_model=PageViewResponse, response_model_exclude_none=True)
async def track_page_view(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    rate_limiter: TrackingRateLimiter = Depends(get_rate_limiter),
):
    """Record a page view and resolve the visitor's identity and session.

    Sets the visitor cookie on the first accepted page view.
    """
    country = detect_country(request)
    if not await _admit(request, rate_limiter):
        return PageViewResponse(country=country, filtered=True)

    data = await _parse_body(request, PageViewIn)
    service = TrackingService(db)
    try:
        result = await service.track_page_view(
            data,
            visitor_cookie=request.cookies.get(settings.VISITOR_COOKIE_NAME),
            ip=client_ip(request),
            user_agent=request.headers.get("user-agent"),
            country=country,
        )
    except SQLAlchemyError:
        logger.exception("Failed to record page view for %s", data.path)
        await db.rollback()
        return PageViewResponse(country=country)

    identity = result.identity
    if identity.is_new_visitor:
        _set_visitor_cookie(response, identity.visitor_id)

    return PageViewResponse(
        visitor_id=identity.visitor_id,
        country=country,
        is_new_visitor=identity.is_new_visitor,
        deduplicated=result.outcome is TrackOutcome.DEDUPLICATED or None,
    )


@router.post("/product-view", response_model=TrackResponse, response_model_exclude_none=True)
async def track_product_view(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    cache: AggregationCache = Depends(get_cache),
    rate_limiter: TrackingRateLimiter = Depends(get_rate_limiter),
):
    """Record a car listing view. Views shorter than the minimum duration are dropped."""
    if not await _admit(request, rate_limiter):
        return TrackResponse(filtered=True)

    data = await _parse_body(request, ProductViewIn)
    service = TrackingService(db, cache)
    try:
        result = await service.track_product_view(
            data,
            visitor_cookie=request.cookies.get(settings.VISITOR_COOKIE_NAME),
            ip=client_ip(request),
            user_agent=request.headers.get("user-agent"),
            country=detect_country(request),
        )
    except SQLAlchemyError:
        logger.exception("Failed to record product view for car %s", data.car_id)
        await db.rollback()
        return TrackResponse()

    if result.identity is not None and result.identity.is_new_visitor:
        _set_visitor_cookie(response, result.identity.visitor_id)

    if result.outcome is TrackOutcome.FILTERED:
        return TrackResponse(filtered=True)
    if result.outcome is TrackOutcome.DEDUPLICATED:
        return TrackResponse(deduplicated=True)
    return TrackResponse()


@router.post("/event", response_model=TrackResponse, response_model_exclude_none=True)
async def track_event(
    request: Request,
    db: AsyncSession = Depends(get_db),
    rate_limiter: TrackingRateLimiter = Depends(get_rate_limiter),
):
    """Record a client event. Unknown event types are accepted and ignored."""
    if not await _admit(request, rate_limiter):
        return TrackResponse(filtered=True)

    event = await _parse_body(request, TrackEventIn)
    if event.event_type != SOCIAL_CLICK_EVENT:
        logger.debug("Ignoring unknown event type %s", event.event_type)
        return TrackResponse()

    try:
        data = SocialClickData.model_validate(event.data)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False)) from None

    service = TrackingService(db)
    try:
        await service.track_social_click(
            data,
            visitor_cookie=request.cookies.get(settings.VISITOR_COOKIE_NAME),
            ip=client_ip(request),
        )
    except SQLAlchemyError:
        logger.exception("Failed to record %s event", event.event_type)
        await db.rollback()
    return TrackResponse()
