# backend/qtalent/api/api_booking.py

import logging
from typing import Any, List

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import ORJSONResponse
from sqlalchemy.orm import Session

from .. import crud
from ..crud.crud_booking import ClaimResult
from ..models import Booking, BookingStatus, User
from ..schemas.booking import (
    BookingCreate,
    BookingResponse,
    ClaimResponse,
    GigApplicationResponse,
)
from ..utils.errors import ConcurrencyConflict, NotFound, PermissionDenied
from .dependencies import get_current_booker, get_current_talent, get_current_user, get_db

router = APIRouter(tags=["bookings"], default_response_class=ORJSONResponse)
logger = logging.getLogger(__name__)
# ‣ Note: no prefix here.  main.py mounts this at /api/v1/bookings


def _load_visible(db: Session, booking_id: int, user: User) -> Booking:
    booking = crud.booking.get_booking(db, booking_id)
    if booking is None:
        raise NotFound("Booking not found", {"booking_id": "not found"})
    is_party = user.id in (booking.requester_id, booking.talent_id)
    is_open_gig = (
        booking.is_gig_opportunity
        and booking.is_public_request
        and booking.talent_id is None
        and booking.status == BookingStatus.PENDING
    )
    if not is_party and not is_open_gig:
        raise PermissionDenied("Not authorized to view this booking")
    return booking


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    *,
    db: Session = Depends(get_db),
    booking_in: BookingCreate,
    current_booker: User = Depends(get_current_booker),
) -> Any:
    """Create a direct booking for a talent, or post a public gig."""
    return crud.booking.create_booking(db, booking_in, requester_id=current_booker.id)


@router.get("/", response_model=List[BookingResponse])
def read_my_bookings(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> Any:
    return crud.booking.get_bookings_for_user(db, current_user.id, skip=skip, limit=limit)


@router.get("/gigs/open", response_model=List[BookingResponse])
def read_open_gigs(
    db: Session = Depends(get_db),
    current_talent: User = Depends(get_current_talent),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> Any:
    return crud.booking.get_open_gigs(db, skip=skip, limit=limit)


@router.get("/{booking_id}", response_model=BookingResponse)
def read_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    return _load_visible(db, booking_id, current_user)


@router.post("/{booking_id}/decline", response_model=BookingResponse)
def decline_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    """Decline a booking or close a gig posting. Declining twice is a no-op."""
    booking = crud.booking.get_booking(db, booking_id)
    if booking is None:
        raise NotFound("Booking not found", {"booking_id": "not found"})
    if booking.is_gig_opportunity and current_user.id == booking.requester_id:
        return crud.booking.decline_gig(db, booking_id, current_user.id)
    return crud.booking.decline_booking(db, booking_id, current_user.id)


# ─── Gigs ────────────────────────────────────────────────────────────────────
@router.post("/{gig_id}/claim", response_model=ClaimResponse)
def claim_gig(
    gig_id: int,
    db: Session = Depends(get_db),
    current_talent: User = Depends(get_current_talent),
) -> Any:
    """Claim an open gig. Exactly one concurrent claimant succeeds; the rest get 409."""
    result = crud.booking.claim_gig(db, gig_id, current_talent.id)
    if result == ClaimResult.ALREADY_CLAIMED:
        raise ConcurrencyConflict("Gig is unavailable", {"gig_id": "unavailable"})
    return ClaimResponse(gig_id=gig_id, result=result.value)


@router.post("/{gig_id}/release", response_model=BookingResponse)
def release_gig(
    gig_id: int,
    db: Session = Depends(get_db),
    current_talent: User = Depends(get_current_talent),
) -> Any:
    return crud.booking.release_gig(db, gig_id, current_talent.id)


@router.post(
    "/{gig_id}/applications",
    response_model=GigApplicationResponse,
    status_code=status.HTTP_201_CREATED,
)
def apply_to_gig(
    gig_id: int,
    db: Session = Depends(get_db),
    current_talent: User = Depends(get_current_talent),
) -> Any:
    return crud.booking.apply_to_gig(db, gig_id, current_talent.id)


@router.get("/{gig_id}/applications", response_model=List[GigApplicationResponse])
def read_gig_applications(
    gig_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    gig = crud.booking.get_booking(db, gig_id)
    if gig is None or not gig.is_gig_opportunity:
        raise NotFound("Gig not found", {"gig_id": "not found"})
    if gig.requester_id != current_user.id:
        raise PermissionDenied("Only the poster can list applications")
    return crud.booking.get_applications(db, gig_id)
