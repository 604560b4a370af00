"""
支付路由
"""
from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from hotel_booking.database import get_db
from hotel_booking.models.schemas import PaymentCreate, PaymentResponse
from hotel_booking.routers.common import to_http_exception
from hotel_booking.security.auth import CallerIdentity, require_staff
from hotel_booking.services.booking_service import BookingService
from hotel_booking.services.errors import BookingError, BookingErrorKind
from hotel_booking.services.payment_service import PaymentService

router = APIRouter(prefix="/bookings/{booking_id}/payments", tags=["支付"])


def _payment_response(payment, balance_due_cents: int) -> PaymentResponse:
    return PaymentResponse(
        id=payment.id,
        booking_id=payment.booking_id,
        amount_cents=payment.amount_cents,
        currency_code=payment.currency_code,
        status=payment.status,
        method=payment.method,
        processor=payment.processor,
        processor_payment_id=payment.processor_payment_id,
        created_at=payment.created_at,
        balance_due_cents=balance_due_cents,
    )


@router.get("", response_model=List[PaymentResponse])
def list_payments(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_staff)
):
    """获取预订支付记录"""
    booking = BookingService(db).get_booking(booking_id)
    if not booking:
        raise to_http_exception(BookingError(BookingErrorKind.BOOKING_NOT_FOUND))
    payments = PaymentService(db).get_payments(booking_id)
    return [_payment_response(p, booking.balance_due_cents) for p in payments]


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
def record_payment(
    booking_id: int,
    data: PaymentCreate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_staff)
):
    """记录一笔支付"""
    try:
        payment = PaymentService(db).record_payment(
            booking_id,
            data.amount_cents,
            method=data.method,
            processor=data.processor,
            processor_payment_id=data.processor_payment_id,
        )
    except BookingError as e:
        raise to_http_exception(e)
    booking = BookingService(db).get_booking(booking_id)
    return _payment_response(payment, booking.balance_due_cents)
