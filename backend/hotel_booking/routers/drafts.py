"""
预订草稿路由
访客可匿名维护自己会话的草稿；待转正列表仅员工可见
"""
from datetime import date, datetime
from typing import Optional
from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from hotel_booking.database import get_db
from hotel_booking.models.schemas import (
    DraftUpsert, DraftResponse, PendingDraftList, ConvertDraftRequest, BookingResponse
)
from hotel_booking.routers.common import to_http_exception
from hotel_booking.security.auth import CallerIdentity, get_optional_user, require_staff
from hotel_booking.services.booking_service import BookingService
from hotel_booking.services.draft_service import DraftService
from hotel_booking.services.errors import BookingError, BookingErrorKind
from hotel_booking.services.pending_booking_service import PendingBookingService

router = APIRouter(prefix="/bookings/drafts", tags=["预订草稿"])


@router.post("", response_model=DraftResponse)
def upsert_draft(
    data: DraftUpsert,
    db: Session = Depends(get_db),
    current_user: Optional[CallerIdentity] = Depends(get_optional_user)
):
    """创建或更新会话草稿"""
    service = DraftService(db)
    try:
        service.upsert_draft(**data.model_dump())
    except BookingError as e:
        raise to_http_exception(e)
    return DraftResponse(**service.get_draft_detail(data.session_id))


@router.get("", response_model=PendingDraftList)
def list_pending_drafts(
    hotel_id: Optional[int] = None,
    created_before: Optional[datetime] = None,
    check_in_from: Optional[date] = None,
    check_in_to: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_staff)
):
    """待转正草稿列表"""
    service = PendingBookingService(db)
    return service.list_pending(
        hotel_id=hotel_id,
        created_before=created_before,
        check_in_from=check_in_from,
        check_in_to=check_in_to,
        page=page,
        limit=limit,
    )


@router.get("/{session_id}", response_model=DraftResponse)
def get_draft(
    session_id: str,
    db: Session = Depends(get_db)
):
    """获取会话草稿"""
    detail = DraftService(db).get_draft_detail(session_id)
    if not detail:
        raise to_http_exception(BookingError(BookingErrorKind.DRAFT_NOT_FOUND))
    return DraftResponse(**detail)


@router.delete("/{session_id}")
def abandon_draft(
    session_id: str,
    db: Session = Depends(get_db)
):
    """放弃会话草稿"""
    try:
        DraftService(db).abandon_draft(session_id)
    except BookingError as e:
        raise to_http_exception(e)
    return {"message": "草稿已删除", "session_id": session_id}


@router.post("/{session_id}/convert", response_model=BookingResponse,
             status_code=status.HTTP_201_CREATED)
def convert_draft(
    session_id: str,
    data: ConvertDraftRequest,
    db: Session = Depends(get_db),
    current_user: Optional[CallerIdentity] = Depends(get_optional_user)
):
    """草稿转为正式预订"""
    service = BookingService(db)
    try:
        booking = service.convert_draft(
            session_id,
            guest_name=data.guest_name,
            contact_email=data.contact_email,
            contact_phone=data.contact_phone,
            source=data.source,
            is_prepaid=data.is_prepaid,
            payment_method=data.payment_method,
            payment_processor=data.payment_processor,
            caller_id=current_user.user_id if current_user else None,
            caller_role=current_user.role if current_user else None,
        )
    except BookingError as e:
        raise to_http_exception(e)
    return BookingResponse(**service.get_booking_detail(booking.id))
