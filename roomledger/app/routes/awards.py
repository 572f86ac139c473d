"""API routes for live room awards."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..awards import AwardLedger, AwardResult, Room, RoomDirectory
from ..billing import BillingService
from ..feature_gates import RateLimiter
from ..schemas.awards import AwardRequest, RoomJoinRequest
from ..schemas.billing import CheckoutSessionResponse, RoomBoostCheckoutRequest
from ..services.auth import CurrentUser, get_current_user
from ..services.billing import get_billing_service
from ..services.ledger import get_award_ledger, get_rate_limiter, get_room_directory
from .common import enforce_rate_limit, ledger_errors

router = APIRouter(prefix="/api/rooms", tags=["rooms"])


@router.post("/{room_code}", response_model=Room, status_code=status.HTTP_201_CREATED)
async def create_room(
    room_code: str,
    *,
    current_user: CurrentUser = Depends(get_current_user),
    rooms: RoomDirectory = Depends(get_room_directory),
) -> Room:
    with ledger_errors():
        return await rooms.create_room(room_code, current_user.id)


@router.post("/{room_code}/join", status_code=status.HTTP_204_NO_CONTENT)
async def join_room(
    room_code: str,
    payload: RoomJoinRequest,
    *,
    current_user: CurrentUser = Depends(get_current_user),
    rooms: RoomDirectory = Depends(get_room_directory),
) -> None:
    name = payload.display_name or current_user.display_name or ""
    with ledger_errors():
        await rooms.join_room(room_code, current_user.id, name)


@router.post("/{room_code}/awards", response_model=AwardResult)
async def award_points(
    room_code: str,
    payload: AwardRequest,
    *,
    current_user: CurrentUser = Depends(get_current_user),
    rooms: RoomDirectory = Depends(get_room_directory),
    ledger: AwardLedger = Depends(get_award_ledger),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> AwardResult:
    """Credit points to room participants; replaying an award key is a no-op."""

    enforce_rate_limit(limiter, "rooms.awards", current_user.id)
    with ledger_errors():
        await rooms.require_host(room_code, current_user.id)
        return await ledger.apply_awards_once(
            room_code,
            payload.award_key,
            [item.model_dump() for item in payload.awards],
            payload.source,
            badge_recipients=payload.badge_recipients,
            metadata=payload.metadata,
        )


@router.post("/{room_code}/boost-checkout", response_model=CheckoutSessionResponse)
def create_room_boost_checkout(
    room_code: str,
    payload: RoomBoostCheckoutRequest,
    *,
    current_user: CurrentUser = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> CheckoutSessionResponse:
    enforce_rate_limit(limiter, "rooms.boost_checkout", current_user.id)
    with ledger_errors():
        session = service.create_room_boost_checkout(
            room_code=room_code,
            buyer_id=current_user.id,
            buyer_name=current_user.display_name or "",
            points=payload.points,
            amount_cents=payload.amount_cents,
            reward_scope=payload.reward_scope,
            award_badge=payload.award_badge,
            label=payload.label,
        )
    return CheckoutSessionResponse.from_checkout(session)


__all__ = ["router", "award_points", "create_room", "create_room_boost_checkout", "join_room"]
