"""
预订核心错误定义
所有业务失败都以 BookingError 抛出，kind 为封闭枚举，调用方可穷举分支
"""
from enum import Enum
from typing import Optional


class BookingErrorKind(str, Enum):
    """预订错误类型"""
    DRAFT_NOT_FOUND = "booking.draftNotFound"
    INSUFFICIENT_INVENTORY = "booking.insufficientInventory"
    INVALID_PROMO_CODE = "booking.invalidPromoCode"
    PROMO_CODE_NOT_YET_VALID = "booking.promoCodeNotYetValid"
    PROMO_CODE_EXPIRED = "booking.promoCodeExpired"
    PROMO_CODE_USAGE_LIMIT_REACHED = "booking.promoCodeUsageLimitReached"
    PROMO_CODE_NOT_APPLICABLE = "booking.promoCodeNotApplicable"
    MISSING_GUEST_INFO = "booking.missingGuestInfo"
    INVALID_DATE_RANGE = "booking.invalidDateRange"
    PRICING_UNAVAILABLE = "booking.pricingUnavailable"
    NO_AVAILABILITY = "booking.noAvailability"
    DRAFT_CONFLICT = "booking.draftConflict"
    BOOKING_NOT_FOUND = "booking.bookingNotFound"
    INVALID_STATUS_TRANSITION = "booking.invalidStatusTransition"
    INVALID_PAYMENT_AMOUNT = "booking.invalidPaymentAmount"
    OVERPAYMENT = "booking.overpayment"


_DEFAULT_MESSAGES = {
    BookingErrorKind.DRAFT_NOT_FOUND: "预订草稿不存在",
    BookingErrorKind.INSUFFICIENT_INVENTORY: "所选日期库存不足",
    BookingErrorKind.INVALID_PROMO_CODE: "优惠码无效",
    BookingErrorKind.PROMO_CODE_NOT_YET_VALID: "优惠码尚未生效",
    BookingErrorKind.PROMO_CODE_EXPIRED: "优惠码已过期",
    BookingErrorKind.PROMO_CODE_USAGE_LIMIT_REACHED: "优惠码使用次数已达上限",
    BookingErrorKind.PROMO_CODE_NOT_APPLICABLE: "订单不满足优惠码使用条件",
    BookingErrorKind.MISSING_GUEST_INFO: "缺少客人姓名或联系邮箱",
    BookingErrorKind.INVALID_DATE_RANGE: "日期范围无效",
    BookingErrorKind.PRICING_UNAVAILABLE: "所选日期价格不完整",
    BookingErrorKind.NO_AVAILABILITY: "所选日期无可售房",
    BookingErrorKind.DRAFT_CONFLICT: "草稿正在被其他请求修改，请重试",
    BookingErrorKind.BOOKING_NOT_FOUND: "预订不存在",
    BookingErrorKind.INVALID_STATUS_TRANSITION: "预订状态不允许该操作",
    BookingErrorKind.INVALID_PAYMENT_AMOUNT: "支付金额必须大于 0",
    BookingErrorKind.OVERPAYMENT: "支付金额超过应付余额",
}

NOT_FOUND_KINDS = frozenset({
    BookingErrorKind.DRAFT_NOT_FOUND,
    BookingErrorKind.BOOKING_NOT_FOUND,
})

CONFLICT_KINDS = frozenset({
    BookingErrorKind.DRAFT_CONFLICT,
})


class BookingError(ValueError):
    """
    预订业务错误

    继承 ValueError，路由层沿用 `except ValueError` 转换为 4xx
    """

    def __init__(self, kind: BookingErrorKind, message: Optional[str] = None):
        self.kind = kind
        self.message = message or _DEFAULT_MESSAGES[kind]
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.kind.value

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}

    def __repr__(self) -> str:
        return f"BookingError({self.code!r}, {self.message!r})"
