"""
支付服务
余额始终按 max(0, total - 已成功支付合计) 计算
"""
import logging
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from hotel_booking.config import settings
from hotel_booking.models.entities import Booking, Payment, PaymentStatus
from hotel_booking.services.errors import BookingError, BookingErrorKind

logger = logging.getLogger(__name__)

# 视为“到店再付”的支付方式 / 渠道，生成 pending 支付
PAY_LATER_METHODS = frozenset({"cash", "manual", "pay_at_hotel"})
PAY_LATER_PROCESSORS = frozenset({"manual", "front_office", "front_office_pending", "pending"})


def is_pay_later(method: Optional[str], processor: Optional[str]) -> bool:
    """判断支付方式是否为稍后支付"""
    method = (method or "").strip().lower()
    processor = (processor or "").strip().lower()
    return method in PAY_LATER_METHODS or processor in PAY_LATER_PROCESSORS


class PaymentService:
    """支付服务"""

    def __init__(self, db: Session, reject_overpayment: Optional[bool] = None):
        self.db = db
        if reject_overpayment is None:
            reject_overpayment = settings.REJECT_OVERPAYMENT
        self.reject_overpayment = reject_overpayment

    def get_payments(self, booking_id: int) -> List[Payment]:
        """获取预订的支付记录"""
        return self.db.query(Payment).filter(
            Payment.booking_id == booking_id
        ).order_by(Payment.id).all()

    def succeeded_total(self, booking_id: int) -> int:
        """已成功支付合计"""
        total = self.db.query(func.coalesce(func.sum(Payment.amount_cents), 0)).filter(
            Payment.booking_id == booking_id,
            Payment.status == PaymentStatus.SUCCEEDED
        ).scalar()
        return int(total or 0)

    def refresh_balance(self, booking: Booking) -> int:
        """重新计算应付余额，不提交事务"""
        self.db.flush()
        booking.balance_due_cents = max(0, booking.total_amount_cents - self.succeeded_total(booking.id))
        return booking.balance_due_cents

    def add_payment(self, booking: Booking, amount_cents: int, method: str = "card",
                    processor: str = "manual", status: PaymentStatus = PaymentStatus.SUCCEEDED,
                    processor_payment_id: Optional[str] = None) -> Payment:
        """写入支付记录并刷新余额，不提交事务"""
        payment = Payment(
            booking_id=booking.id,
            amount_cents=amount_cents,
            currency_code=booking.currency_code,
            status=status,
            method=method or "card",
            processor=processor or "manual",
            processor_payment_id=processor_payment_id,
        )
        self.db.add(payment)
        self.refresh_balance(booking)
        logger.info(
            f"Payment added: booking={booking.id} amount={amount_cents} status={status.value}"
        )
        return payment

    def record_prepayment(self, booking: Booking, method: Optional[str],
                          processor: Optional[str]) -> Optional[Payment]:
        """预付：按总价生成支付，稍后支付的方式记为 pending"""
        if booking.total_amount_cents <= 0:
            return None
        status = PaymentStatus.PENDING if is_pay_later(method, processor) else PaymentStatus.SUCCEEDED
        return self.add_payment(
            booking,
            booking.total_amount_cents,
            method=method or "card",
            processor=processor or "manual",
            status=status,
        )

    def record_payment(self, booking_id: int, amount_cents: int, method: str = "card",
                       processor: str = "manual",
                       processor_payment_id: Optional[str] = None) -> Payment:
        """
        记录一笔已成功的支付

        超额支付默认截断余额为 0；REJECT_OVERPAYMENT 开启时拒绝
        """
        if amount_cents is None or amount_cents <= 0:
            raise BookingError(BookingErrorKind.INVALID_PAYMENT_AMOUNT)

        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise BookingError(BookingErrorKind.BOOKING_NOT_FOUND)

        if self.reject_overpayment and amount_cents > booking.balance_due_cents:
            raise BookingError(
                BookingErrorKind.OVERPAYMENT,
                f"支付金额 {amount_cents} 超过应付余额 {booking.balance_due_cents}"
            )

        try:
            payment = self.add_payment(
                booking, amount_cents, method=method, processor=processor,
                status=PaymentStatus.SUCCEEDED, processor_payment_id=processor_payment_id,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(payment)
        return payment
