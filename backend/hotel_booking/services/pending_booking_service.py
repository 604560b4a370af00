"""
待转正草稿查询服务 - 前台跟进未完成的在线预订
"""
import logging
from datetime import date, datetime
from typing import Optional
from sqlalchemy.orm import Session
from hotel_booking.config import settings
from hotel_booking.models.entities import BookingDraft, DraftStatus

logger = logging.getLogger(__name__)


class PendingBookingService:
    """待转正草稿服务"""

    def __init__(self, db: Session):
        self.db = db

    def list_pending(self, hotel_id: Optional[int] = None,
                     created_before: Optional[datetime] = None,
                     check_in_from: Optional[date] = None,
                     check_in_to: Optional[date] = None,
                     page: int = 1, limit: int = 20,
                     now: Optional[datetime] = None) -> dict:
        """
        分页列出待转正草稿，按创建时间倒序

        Returns:
            {"items": [...], "total": int, "page": int, "limit": int}
        """
        page = max(1, page)
        limit = max(1, min(limit, 100))
        now = now or datetime.utcnow()

        query = self.db.query(BookingDraft).filter(BookingDraft.status == DraftStatus.DRAFT)
        if hotel_id is not None:
            query = query.filter(BookingDraft.hotel_id == hotel_id)
        if created_before is not None:
            query = query.filter(BookingDraft.created_at < created_before)
        if check_in_from is not None:
            query = query.filter(BookingDraft.check_in_date >= check_in_from)
        if check_in_to is not None:
            query = query.filter(BookingDraft.check_in_date <= check_in_to)

        total = query.count()
        drafts = query.order_by(
            BookingDraft.created_at.desc(), BookingDraft.id.desc()
        ).offset((page - 1) * limit).limit(limit).all()

        items = []
        for draft in drafts:
            days = (now - draft.created_at).days if draft.created_at else 0
            items.append({
                'id': draft.id,
                'session_id': draft.session_id,
                'reference_code': draft.reference_code,
                'hotel_id': draft.hotel_id,
                'room_type_id': draft.room_type_id,
                'check_in_date': draft.check_in_date,
                'check_out_date': draft.check_out_date,
                'num_adults': draft.num_adults,
                'num_children': draft.num_children,
                'contact_email': draft.contact_email,
                'contact_phone': draft.contact_phone,
                'currency_code': draft.currency_code,
                'total_amount_cents': draft.total_amount_cents,
                'created_at': draft.created_at,
                'days_since_created': days,
                'is_expiring_soon': days >= settings.PENDING_DRAFT_EXPIRY_DAYS,
            })

        logger.debug(f"Pending drafts listed: total={total} page={page}")
        return {'items': items, 'total': total, 'page': page, 'limit': limit}
