"""Booking lookup and staff confirmation."""

from fastapi import APIRouter, Depends, Header

from booking_api.dependencies import get_booking_service, get_payment_service
from booking_api.models.bookings import BookingDetailResponse, PaymentSummary
from booking_api.models.common import ErrorResponse
from booking_engine.models import Booking
from booking_engine.services.booking_service import BookingService
from booking_engine.services.payment_service import PaymentService

router = APIRouter(tags=["bookings"])


def _detail(booking: Booking, payments: PaymentService, changed: bool | None = None) -> BookingDetailResponse:
    payment = payments.get_for_booking(booking.booking_id)
    return BookingDetailResponse(
        booking=booking,
        payment=PaymentSummary.from_payment(payment) if payment else None,
        changed=changed,
    )


@router.get(
    "/bookings/{booking_id}",
    summary="Get a booking with its payment",
    response_model=BookingDetailResponse,
    responses={404: {"model": ErrorResponse, "description": "Booking not found"}},
)
async def get_booking(
    booking_id: str,
    bookings: BookingService = Depends(get_booking_service),
    payments: PaymentService = Depends(get_payment_service),
) -> BookingDetailResponse:
    return _detail(bookings.get_or_raise(booking_id), payments)


@router.post(
    "/bookings/{booking_id}/confirm",
    summary="Confirm a paid booking",
    description="Moves a paid booking to confirmed. Confirming twice is a no-op.",
    response_model=BookingDetailResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Booking not found"},
        409: {"model": ErrorResponse, "description": "Booking is not paid"},
    },
)
async def confirm_booking(
    booking_id: str,
    x_actor: str | None = Header(default=None),
    bookings: BookingService = Depends(get_booking_service),
    payments: PaymentService = Depends(get_payment_service),
) -> BookingDetailResponse:
    booking, changed = bookings.confirm(booking_id, actor=f"staff:{x_actor}" if x_actor else "staff")
    return _detail(booking, payments, changed)
