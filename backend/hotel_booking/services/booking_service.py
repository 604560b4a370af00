"""
预订服务 - 草稿转正与直接预订

草稿转正流程（DRAFT_PROMOTION_MACHINE）：
    draft -> validated -> priced -> inventory_confirmed
          -> persisted -> inventory_decremented -> draft_retired

所有写操作（预订、明细、优惠核销、库存扣减、支付、删除草稿）
在同一个数据库事务内完成，任何一步失败整体回滚。
"""
import logging
from datetime import date, datetime
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from hotel_booking.engine.state_machine import (
    StateMachine, InvalidTransition, BOOKING_STATUS_MACHINE, DRAFT_PROMOTION_MACHINE
)
from hotel_booking.models.entities import (
    Booking, BookingItem, BookingStatus, BookingSource, UserRole
)
from hotel_booking.services.customer_service import CustomerService
from hotel_booking.services.draft_service import DraftService, session_locks
from hotel_booking.services.errors import BookingError, BookingErrorKind
from hotel_booking.services.inventory_service import InventoryService
from hotel_booking.services.payment_service import PaymentService
from hotel_booking.services.pricing_service import PricingService, settle_totals
from hotel_booking.services.promo_service import PromoService, PromoDiscount
from hotel_booking.services.rate_service import stay_nights
from hotel_booking.services.reference_codes import BOOKING_PREFIX, generate_unique_reference_code

logger = logging.getLogger(__name__)

_ROLE_SOURCES = {
    UserRole.FRONT_OFFICE: BookingSource.FRONT_OFFICE,
    UserRole.MANAGER: BookingSource.ADMIN,
    UserRole.ADMIN: BookingSource.ADMIN,
    UserRole.CUSTOMER: BookingSource.WEB,
}


def infer_source(source: Optional[BookingSource], caller_role: Optional[UserRole],
                 default: BookingSource = BookingSource.WEB) -> BookingSource:
    """预订来源：优先使用调用方指定，否则按角色推断"""
    if source is not None:
        return BookingSource(source)
    if caller_role is not None:
        return _ROLE_SOURCES.get(UserRole(caller_role), default)
    return default


class BookingService:
    """预订服务"""

    def __init__(self, db: Session):
        self.db = db
        self.draft_service = DraftService(db)
        self.pricing_service = PricingService(db)
        self.promo_service = PromoService(db)
        self.inventory_service = InventoryService(db)
        self.payment_service = PaymentService(db)
        self.customer_service = CustomerService(db)

    # ============== 查询 ==============

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        """获取单个预订"""
        return self.db.query(Booking).filter(Booking.id == booking_id).first()

    def get_booking_by_reference(self, reference_code: str) -> Optional[Booking]:
        """根据参考号获取预订"""
        return self.db.query(Booking).filter(Booking.reference_code == reference_code).first()

    # ============== 草稿转正 ==============

    def convert_draft(self, session_id: str, guest_name: Optional[str],
                      contact_email: Optional[str], contact_phone: Optional[str] = None,
                      source: Optional[BookingSource] = None, is_prepaid: bool = False,
                      payment_method: Optional[str] = None,
                      payment_processor: Optional[str] = None,
                      caller_id: Optional[int] = None,
                      caller_role: Optional[UserRole] = None,
                      today: Optional[date] = None) -> Booking:
        """草稿转为正式预订"""
        with session_locks.hold(session_id):
            try:
                booking = self._convert_locked(
                    session_id, guest_name, contact_email, contact_phone, source,
                    is_prepaid, payment_method, payment_processor,
                    caller_id, caller_role, today,
                )
                self.db.commit()
            except BookingError as e:
                self.db.rollback()
                logger.warning(f"Draft conversion failed for session {session_id}: {e.code}")
                raise
            except StaleDataError:
                self.db.rollback()
                logger.warning(f"Draft for session {session_id} changed during conversion")
                raise BookingError(BookingErrorKind.DRAFT_CONFLICT)
            except Exception:
                self.db.rollback()
                logger.exception(f"Draft conversion aborted for session {session_id}")
                raise

        self.db.refresh(booking)
        logger.info(f"Draft converted: session={session_id} booking={booking.reference_code}")
        return booking

    def _convert_locked(self, session_id, guest_name, contact_email, contact_phone,
                        source, is_prepaid, payment_method, payment_processor,
                        caller_id, caller_role, today) -> Booking:
        machine = StateMachine(DRAFT_PROMOTION_MACHINE)

        draft = self.draft_service.get_draft(session_id)
        if not draft and contact_email:
            # 会话丢失（换设备、清 cookie）时按联系邮箱找回最近的草稿
            draft = self.draft_service.find_latest_by_email(contact_email)
            if draft:
                logger.info(f"Draft for session {session_id} found by contact email: {draft.reference_code}")
        if not draft:
            raise BookingError(BookingErrorKind.DRAFT_NOT_FOUND)

        if not (guest_name and guest_name.strip()) or not (contact_email and contact_email.strip()):
            raise BookingError(BookingErrorKind.MISSING_GUEST_INFO)
        if not draft.items:
            raise BookingError(BookingErrorKind.INVALID_DATE_RANGE, "草稿没有入住明细")
        # 明细必须逐晚覆盖入住区间，库存按区间夜晚检查和扣减
        nights = stay_nights(draft.check_in_date, draft.check_out_date)
        item_dates = [item.date for item in draft.items]
        if len(item_dates) != len(nights) or set(item_dates) != set(nights):
            raise BookingError(BookingErrorKind.INVALID_DATE_RANGE, "草稿明细与入住区间不一致")
        machine.fire("validate")

        # 优惠按草稿保存的房费基数重新校验，不重新取价
        promo = None
        discount = 0
        if draft.promo_code:
            promo = self.promo_service.validate(
                draft.promo_code, draft.hotel_id, draft.base_amount_cents,
                nights=len(nights), today=today,
            )
            discount = promo.discount_amount_cents
        machine.fire("price")

        self.inventory_service.check(draft.room_type_id, nights, require_available=True)
        machine.fire("confirm_inventory")

        discount, total, _ = settle_totals(
            draft.base_amount_cents, draft.tax_amount_cents, draft.fee_amount_cents, discount
        )
        booking = self._new_booking(
            hotel_id=draft.hotel_id,
            room_type_id=draft.room_type_id,
            check_in_date=draft.check_in_date,
            check_out_date=draft.check_out_date,
            num_adults=draft.num_adults,
            num_children=draft.num_children,
            base=draft.base_amount_cents,
            tax=draft.tax_amount_cents,
            fee=draft.fee_amount_cents,
            discount=discount,
            total=total,
            currency_code=draft.currency_code,
            source=infer_source(source, caller_role, BookingSource.WEB),
            user_id=caller_id,
            guest_name=guest_name.strip(),
            contact_email=contact_email.strip(),
            contact_phone=contact_phone or draft.contact_phone,
            items=[
                (item.date, item.price_cents, item.tax_amount_cents, item.fee_amount_cents)
                for item in draft.items
            ],
        )
        self._redeem_promo(promo, booking)
        machine.fire("persist")

        self.inventory_service.decrement(draft.room_type_id, nights)
        machine.fire("decrement_inventory")

        if is_prepaid:
            self.payment_service.record_prepayment(booking, payment_method, payment_processor)

        self.db.delete(draft)
        self.db.flush()
        machine.fire("retire_draft")
        logger.debug(
            f"Draft promotion {draft.reference_code}: "
            + " -> ".join(s.current_state for s in machine.get_history())
        )
        return booking

    # ============== 直接预订（前台散客） ==============

    def create_direct_booking(self, hotel_id: int, room_type_id: int,
                              check_in_date: date, check_out_date: date,
                              email: str, first_name: str,
                              last_name: Optional[str] = None,
                              phone: Optional[str] = None,
                              num_adults: int = 1, num_children: int = 0,
                              promo_code: Optional[str] = None,
                              rate_plan_id: Optional[int] = None,
                              is_prepaid: bool = False,
                              payment_method: Optional[str] = None,
                              payment_processor: Optional[str] = None,
                              source: Optional[BookingSource] = None,
                              notes: Optional[str] = None,
                              caller_id: Optional[int] = None,
                              caller_role: Optional[UserRole] = None,
                              today: Optional[date] = None) -> dict:
        """
        直接创建预订（不经过草稿）

        Returns:
            {"booking": Booking, "customer": Customer, "is_new_customer": bool}
        """
        try:
            customer, is_new_customer = self.customer_service.find_or_create(
                email, first_name, last_name=last_name, phone=phone
            )

            quote = self.pricing_service.quote(
                hotel_id, room_type_id, check_in_date, check_out_date,
                num_adults=num_adults, num_children=num_children,
                promo_code=promo_code, rate_plan_id=rate_plan_id, today=today,
            )
            nights = [night for night, _ in quote.nightly]
            self.inventory_service.check(room_type_id, nights, require_available=True)

            guest_name = " ".join(part for part in [first_name, last_name] if part)
            booking = self._new_booking(
                hotel_id=hotel_id,
                room_type_id=room_type_id,
                check_in_date=check_in_date,
                check_out_date=check_out_date,
                num_adults=num_adults,
                num_children=num_children,
                base=quote.base_amount_cents,
                tax=quote.tax_amount_cents,
                fee=quote.fee_amount_cents,
                discount=quote.discount_amount_cents,
                total=quote.total_amount_cents,
                currency_code=self.pricing_service.rate_service.get_hotel_currency(hotel_id),
                source=infer_source(source, caller_role, BookingSource.WALK_IN),
                user_id=caller_id,
                guest_name=guest_name.strip(),
                contact_email=customer.email,
                contact_phone=phone or customer.phone,
                items=[(night, price, 0, 0) for night, price in quote.nightly],
                customer_id=customer.id,
                notes=notes,
            )
            self._redeem_promo(quote.promo, booking)
            self.inventory_service.decrement(room_type_id, nights)

            if is_prepaid:
                self.payment_service.record_prepayment(booking, payment_method, payment_processor)

            self.customer_service.touch_last_booking(customer)
            self.db.commit()
        except BookingError as e:
            self.db.rollback()
            logger.warning(f"Direct booking failed for room_type {room_type_id}: {e.code}")
            raise
        except Exception:
            self.db.rollback()
            logger.exception(f"Direct booking aborted for room_type {room_type_id}")
            raise

        self.db.refresh(booking)
        self.db.refresh(customer)
        logger.info(f"Direct booking created: {booking.reference_code} customer={customer.id}")
        return {"booking": booking, "customer": customer, "is_new_customer": is_new_customer}

    # ============== 状态流转 ==============

    def transition_status(self, booking_id: int, trigger: str,
                          reason: Optional[str] = None) -> Booking:
        """按触发动作推进预订状态（confirm / check_in / check_out / cancel）"""
        booking = self.get_booking(booking_id)
        if not booking:
            raise BookingError(BookingErrorKind.BOOKING_NOT_FOUND)

        machine = StateMachine(BOOKING_STATUS_MACHINE, state=BookingStatus(booking.status).value)
        try:
            new_state = machine.fire(trigger)
        except InvalidTransition:
            raise BookingError(
                BookingErrorKind.INVALID_STATUS_TRANSITION,
                f"状态为 {BookingStatus(booking.status).value} 的预订不可执行 {trigger}，"
                f"可执行: {', '.join(machine.available_triggers()) or '无'}"
            )

        try:
            booking.status = BookingStatus(new_state)
            if booking.status == BookingStatus.CANCELLED:
                booking.cancelled_at = datetime.utcnow()
                booking.cancellation_reason = reason
                self.inventory_service.release(
                    booking.room_type_id, [item.date for item in booking.items]
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info(f"Booking {booking.reference_code} -> {booking.status.value}")
        return booking

    def cancel_booking(self, booking_id: int, reason: Optional[str] = None) -> Booking:
        """取消预订并释放库存"""
        return self.transition_status(booking_id, "cancel", reason=reason)

    def get_booking_detail(self, booking_id: int) -> Optional[dict]:
        """获取预订详情（包含明细、支付、优惠）"""
        booking = self.get_booking(booking_id)
        if not booking:
            return None

        return {
            'id': booking.id,
            'reference_code': booking.reference_code,
            'hotel_id': booking.hotel_id,
            'room_type_id': booking.room_type_id,
            'customer_id': booking.customer_id,
            'user_id': booking.user_id,
            'status': booking.status,
            'source': booking.source,
            'check_in_date': booking.check_in_date,
            'check_out_date': booking.check_out_date,
            'num_adults': booking.num_adults,
            'num_children': booking.num_children,
            'guest_name': booking.guest_name,
            'contact_email': booking.contact_email,
            'contact_phone': booking.contact_phone,
            'currency_code': booking.currency_code,
            'base_amount_cents': booking.base_amount_cents,
            'tax_amount_cents': booking.tax_amount_cents,
            'fee_amount_cents': booking.fee_amount_cents,
            'discount_amount_cents': booking.discount_amount_cents,
            'total_amount_cents': booking.total_amount_cents,
            'balance_due_cents': booking.balance_due_cents,
            'notes': booking.notes,
            'items': [
                {
                    'date': item.date,
                    'price_cents': item.price_cents,
                    'tax_amount_cents': item.tax_amount_cents,
                    'fee_amount_cents': item.fee_amount_cents,
                }
                for item in booking.items
            ],
            'payments': [
                {
                    'id': p.id,
                    'amount_cents': p.amount_cents,
                    'status': p.status,
                    'method': p.method,
                    'processor': p.processor,
                }
                for p in booking.payments
            ],
            'promotions': [
                {'promo_code_id': p.promo_code_id, 'amount_cents': p.amount_cents}
                for p in booking.promotions
            ],
            'cancelled_at': booking.cancelled_at,
            'cancellation_reason': booking.cancellation_reason,
            'created_at': booking.created_at,
        }

    # ============== 内部步骤 ==============

    def _new_booking(self, hotel_id: int, room_type_id: int, check_in_date: date,
                     check_out_date: date, num_adults: int, num_children: int,
                     base: int, tax: int, fee: int, discount: int, total: int,
                     currency_code: str, source: BookingSource,
                     items: List[Tuple[date, int, int, int]],
                     user_id: Optional[int] = None, guest_name: Optional[str] = None,
                     contact_email: Optional[str] = None, contact_phone: Optional[str] = None,
                     customer_id: Optional[int] = None, notes: Optional[str] = None) -> Booking:
        """写入预订及每晚明细（不提交）"""
        booking = Booking(
            reference_code=generate_unique_reference_code(BOOKING_PREFIX, self._reference_exists),
            hotel_id=hotel_id,
            room_type_id=room_type_id,
            customer_id=customer_id,
            user_id=user_id,
            status=BookingStatus.CONFIRMED,
            source=source,
            check_in_date=check_in_date,
            check_out_date=check_out_date,
            num_adults=num_adults,
            num_children=num_children,
            base_amount_cents=base,
            tax_amount_cents=tax,
            fee_amount_cents=fee,
            discount_amount_cents=discount,
            total_amount_cents=total,
            balance_due_cents=total,
            currency_code=currency_code,
            guest_name=guest_name,
            contact_email=contact_email,
            contact_phone=contact_phone,
            notes=notes,
        )
        for night, price_cents, tax_cents, fee_cents in items:
            booking.items.append(BookingItem(
                date=night,
                price_cents=price_cents,
                tax_amount_cents=tax_cents,
                fee_amount_cents=fee_cents,
            ))
        self.db.add(booking)
        self.db.flush()
        return booking

    def _redeem_promo(self, promo: Optional[PromoDiscount], booking: Booking) -> None:
        if promo is not None and booking.discount_amount_cents > 0:
            self.promo_service.redeem(promo.promo_code_id, booking.id, booking.discount_amount_cents)

    def _reference_exists(self, code: str) -> bool:
        return self.db.query(Booking.id).filter(Booking.reference_code == code).first() is not None

