"""
优惠码校验与核销

校验按顺序执行，第一个失败即返回：
    存在/属于该酒店/启用 -> 生效日期 -> 截止日期 -> 使用次数 -> 使用门槛
核销只发生在正式预订创建时，草稿阶段只校验不计数
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from hotel_booking.models.entities import PromoCode, BookingPromotion, ChargeType
from hotel_booking.services.errors import BookingError, BookingErrorKind
from hotel_booking.services.money import percent_of

logger = logging.getLogger(__name__)


@dataclass
class PromoDiscount:
    """优惠码校验结果"""
    promo_code_id: int
    code: str
    discount_amount_cents: int


class PromoService:
    """优惠码服务"""

    def __init__(self, db: Session):
        self.db = db

    def find_code(self, code: str, hotel_id: int) -> Optional[PromoCode]:
        """按酒店查找优惠码（不区分大小写）"""
        normalized = code.strip().upper()
        return self.db.query(PromoCode).filter(
            PromoCode.hotel_id == hotel_id,
            func.upper(PromoCode.code) == normalized
        ).first()

    def validate(self, code: str, hotel_id: int, base_amount_cents: int,
                 nights: Optional[int] = None,
                 today: Optional[date] = None) -> PromoDiscount:
        """
        校验优惠码并计算折扣

        Args:
            code: 优惠码
            hotel_id: 酒店
            base_amount_cents: 房费基数
            nights: 入住晚数（用于 min_nights 门槛）
            today: 当前日期，默认 date.today()

        Returns:
            PromoDiscount
        """
        today = today or date.today()
        promo = self.find_code(code, hotel_id) if code and code.strip() else None

        if promo is None or not promo.is_active:
            raise BookingError(BookingErrorKind.INVALID_PROMO_CODE)

        if promo.start_date and today < promo.start_date:
            raise BookingError(BookingErrorKind.PROMO_CODE_NOT_YET_VALID)

        if promo.end_date and today > promo.end_date:
            raise BookingError(BookingErrorKind.PROMO_CODE_EXPIRED)

        if promo.usage_limit is not None and promo.usage_count >= promo.usage_limit:
            raise BookingError(BookingErrorKind.PROMO_CODE_USAGE_LIMIT_REACHED)

        if promo.min_nights is not None and nights is not None and nights < promo.min_nights:
            raise BookingError(
                BookingErrorKind.PROMO_CODE_NOT_APPLICABLE,
                f"至少需要入住 {promo.min_nights} 晚"
            )

        if promo.min_amount_cents is not None and base_amount_cents < promo.min_amount_cents:
            raise BookingError(
                BookingErrorKind.PROMO_CODE_NOT_APPLICABLE,
                f"房费需满 {promo.min_amount_cents} 分"
            )

        if promo.type == ChargeType.PERCENT:
            discount = percent_of(base_amount_cents, promo.value)
        else:
            discount = promo.value

        if promo.max_discount_cents is not None:
            discount = min(discount, promo.max_discount_cents)

        return PromoDiscount(
            promo_code_id=promo.id,
            code=promo.code,
            discount_amount_cents=max(0, discount),
        )

    def redeem(self, promo_code_id: int, booking_id: int, amount_cents: int) -> BookingPromotion:
        """
        核销优惠码：usage_count 条件 +1 并写入核销记录

        条件 UPDATE 保证并发核销最后一次额度时只有一个成功。
        """
        affected = self.db.query(PromoCode).filter(
            PromoCode.id == promo_code_id,
            or_(
                PromoCode.usage_limit.is_(None),
                PromoCode.usage_count < PromoCode.usage_limit
            )
        ).update(
            {PromoCode.usage_count: PromoCode.usage_count + 1},
            synchronize_session=False
        )
        if affected != 1:
            logger.warning(f"Promo code {promo_code_id} usage limit reached during redemption")
            raise BookingError(BookingErrorKind.PROMO_CODE_USAGE_LIMIT_REACHED)

        promotion = BookingPromotion(
            booking_id=booking_id,
            promo_code_id=promo_code_id,
            amount_cents=amount_cents,
        )
        self.db.add(promotion)
        logger.info(f"Promo code {promo_code_id} redeemed for booking {booking_id}: {amount_cents}")
        return promotion
