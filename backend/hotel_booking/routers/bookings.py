"""
预订管理路由
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from hotel_booking.database import get_db
from hotel_booking.models.schemas import (
    DirectBookingRequest, DirectBookingResponse, BookingResponse, StatusChange, CancelRequest
)
from hotel_booking.routers.common import to_http_exception
from hotel_booking.security.auth import CallerIdentity, require_staff
from hotel_booking.services.booking_service import BookingService
from hotel_booking.services.errors import BookingError, BookingErrorKind

router = APIRouter(prefix="/bookings", tags=["预订管理"])


@router.post("/direct", response_model=DirectBookingResponse,
             status_code=status.HTTP_201_CREATED)
def create_direct_booking(
    data: DirectBookingRequest,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_staff)
):
    """前台直接创建预订（自动建档客人）"""
    service = BookingService(db)
    try:
        result = service.create_direct_booking(
            caller_id=current_user.user_id,
            caller_role=current_user.role,
            **data.model_dump()
        )
    except BookingError as e:
        raise to_http_exception(e)

    return DirectBookingResponse(
        booking=BookingResponse(**service.get_booking_detail(result["booking"].id)),
        customer_id=result["customer"].id,
        is_new_customer=result["is_new_customer"],
    )


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_staff)
):
    """获取预订详情"""
    detail = BookingService(db).get_booking_detail(booking_id)
    if not detail:
        raise to_http_exception(BookingError(BookingErrorKind.BOOKING_NOT_FOUND))
    return BookingResponse(**detail)


@router.post("/{booking_id}/status", response_model=BookingResponse)
def change_status(
    booking_id: int,
    data: StatusChange,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_staff)
):
    """推进预订状态"""
    service = BookingService(db)
    try:
        service.transition_status(booking_id, data.trigger, reason=data.reason)
    except BookingError as e:
        raise to_http_exception(e)
    return BookingResponse(**service.get_booking_detail(booking_id))


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: int,
    data: CancelRequest,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_staff)
):
    """取消预订"""
    service = BookingService(db)
    try:
        service.cancel_booking(booking_id, reason=data.reason)
    except BookingError as e:
        raise to_http_exception(e)
    return BookingResponse(**service.get_booking_detail(booking_id))
