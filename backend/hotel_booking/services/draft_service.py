"""
预订草稿服务
每个访客会话一条草稿（session_id 唯一），upsert 语义：
    已存在 -> 覆盖字段并重建每晚明细（先删后建）
    不存在 -> 新建草稿 + 明细
同一会话的 upsert 通过进程内会话锁串行化，跨进程由 version 乐观锁兜底
"""
import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime
from typing import Dict, Optional
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from hotel_booking.models.entities import BookingDraft, BookingDraftItem, DraftStatus
from hotel_booking.services.errors import BookingError, BookingErrorKind
from hotel_booking.services.inventory_service import InventoryService
from hotel_booking.services.pricing_service import PricingService
from hotel_booking.services.rate_service import stay_nights
from hotel_booking.services.reference_codes import DRAFT_PREFIX, generate_unique_reference_code

logger = logging.getLogger(__name__)


class _SessionLocks:
    """按 session_id 分配的互斥锁，无人持有时回收"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._holders: Dict[str, int] = {}

    @contextmanager
    def hold(self, session_id: str):
        with self._guard:
            lock = self._locks.setdefault(session_id, threading.Lock())
            self._holders[session_id] = self._holders.get(session_id, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._holders[session_id] -= 1
                if self._holders[session_id] == 0:
                    del self._holders[session_id]
                    del self._locks[session_id]


session_locks = _SessionLocks()


class DraftService:
    """草稿服务"""

    def __init__(self, db: Session):
        self.db = db
        self.pricing_service = PricingService(db)
        self.inventory_service = InventoryService(db)

    def get_draft(self, session_id: str) -> Optional[BookingDraft]:
        """按会话获取草稿"""
        return self.db.query(BookingDraft).filter(
            BookingDraft.session_id == session_id
        ).first()

    def find_latest_by_email(self, contact_email: str) -> Optional[BookingDraft]:
        """按联系邮箱查找最近更新的草稿（会话丢失时转正使用）"""
        normalized = (contact_email or "").strip().lower()
        if not normalized:
            return None
        return self.db.query(BookingDraft).filter(
            func.lower(BookingDraft.contact_email) == normalized,
            BookingDraft.status == DraftStatus.DRAFT
        ).order_by(BookingDraft.updated_at.desc(), BookingDraft.id.desc()).first()

    def upsert_draft(self, session_id: str, hotel_id: int, room_type_id: int,
                     check_in_date: date, check_out_date: date,
                     num_adults: int = 1, num_children: int = 0,
                     promo_code: Optional[str] = None,
                     rate_plan_id: Optional[int] = None,
                     contact_email: Optional[str] = None,
                     contact_phone: Optional[str] = None,
                     today: Optional[date] = None) -> BookingDraft:
        """创建或更新草稿"""
        if not session_id:
            raise BookingError(BookingErrorKind.MISSING_GUEST_INFO, "缺少会话标识")
        if check_out_date <= check_in_date:
            raise BookingError(BookingErrorKind.INVALID_DATE_RANGE, "离店日期必须晚于入住日期")

        with session_locks.hold(session_id):
            return self._upsert_locked(
                session_id, hotel_id, room_type_id, check_in_date, check_out_date,
                num_adults, num_children, promo_code, rate_plan_id,
                contact_email, contact_phone, today, retry_on_conflict=True,
            )

    def _upsert_locked(self, session_id, hotel_id, room_type_id, check_in_date,
                       check_out_date, num_adults, num_children, promo_code,
                       rate_plan_id, contact_email, contact_phone, today,
                       retry_on_conflict: bool) -> BookingDraft:
        # 草稿阶段只要求每晚有开放库存行，不占房
        self.inventory_service.check(
            room_type_id,
            stay_nights(check_in_date, check_out_date),
            require_available=False,
            failure=BookingErrorKind.NO_AVAILABILITY,
        )

        quote = self.pricing_service.quote(
            hotel_id, room_type_id, check_in_date, check_out_date,
            num_adults=num_adults, num_children=num_children,
            promo_code=promo_code, rate_plan_id=rate_plan_id, today=today,
        )

        draft = self.get_draft(session_id)
        is_new = draft is None
        if is_new:
            draft = BookingDraft(
                session_id=session_id,
                reference_code=generate_unique_reference_code(DRAFT_PREFIX, self._reference_exists),
            )
            self.db.add(draft)
        else:
            # 先删后建：清空旧明细并落库
            draft.items.clear()
            self.db.flush()

        draft.hotel_id = hotel_id
        draft.room_type_id = room_type_id
        draft.rate_plan_id = rate_plan_id
        draft.check_in_date = check_in_date
        draft.check_out_date = check_out_date
        draft.num_adults = num_adults
        draft.num_children = num_children
        draft.promo_code = quote.promo.code if quote.promo else None
        draft.contact_email = contact_email
        draft.contact_phone = contact_phone
        draft.currency_code = self.pricing_service.rate_service.get_hotel_currency(hotel_id)
        draft.updated_at = datetime.utcnow()
        for key, value in quote.amounts().items():
            setattr(draft, key, value)

        for night, price_cents in quote.nightly:
            draft.items.append(BookingDraftItem(date=night, price_cents=price_cents))

        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Draft for session {session_id} was modified concurrently")
            raise BookingError(BookingErrorKind.DRAFT_CONFLICT)
        except IntegrityError:
            self.db.rollback()
            if retry_on_conflict:
                # 另一请求抢先插入了同会话草稿，按更新重试一次
                logger.info(f"Draft insert for session {session_id} lost race, retrying as update")
                return self._upsert_locked(
                    session_id, hotel_id, room_type_id, check_in_date, check_out_date,
                    num_adults, num_children, promo_code, rate_plan_id,
                    contact_email, contact_phone, today, retry_on_conflict=False,
                )
            raise BookingError(BookingErrorKind.DRAFT_CONFLICT)

        self.db.refresh(draft)
        logger.info(
            f"Draft {'created' if is_new else 'updated'}: session={session_id} "
            f"ref={draft.reference_code} total={draft.total_amount_cents}"
        )
        return draft

    def abandon_draft(self, session_id: str) -> bool:
        """放弃草稿（连同明细删除）"""
        draft = self.get_draft(session_id)
        if not draft:
            raise BookingError(BookingErrorKind.DRAFT_NOT_FOUND)

        self.db.delete(draft)
        self.db.commit()
        logger.info(f"Draft abandoned: session={session_id}")
        return True

    def get_draft_detail(self, session_id: str) -> Optional[dict]:
        """获取草稿详情（包含每晚明细）"""
        draft = self.get_draft(session_id)
        if not draft:
            return None

        return {
            'id': draft.id,
            'session_id': draft.session_id,
            'reference_code': draft.reference_code,
            'status': draft.status,
            'hotel_id': draft.hotel_id,
            'room_type_id': draft.room_type_id,
            'rate_plan_id': draft.rate_plan_id,
            'check_in_date': draft.check_in_date,
            'check_out_date': draft.check_out_date,
            'num_adults': draft.num_adults,
            'num_children': draft.num_children,
            'promo_code': draft.promo_code,
            'contact_email': draft.contact_email,
            'contact_phone': draft.contact_phone,
            'currency_code': draft.currency_code,
            'base_amount_cents': draft.base_amount_cents,
            'tax_amount_cents': draft.tax_amount_cents,
            'fee_amount_cents': draft.fee_amount_cents,
            'discount_amount_cents': draft.discount_amount_cents,
            'total_amount_cents': draft.total_amount_cents,
            'balance_due_cents': draft.balance_due_cents,
            'items': [
                {'date': item.date, 'price_cents': item.price_cents}
                for item in draft.items
            ],
            'created_at': draft.created_at,
            'updated_at': draft.updated_at,
        }

    def _reference_exists(self, code: str) -> bool:
        return self.db.query(BookingDraft.id).filter(
            BookingDraft.reference_code == code
        ).first() is not None

