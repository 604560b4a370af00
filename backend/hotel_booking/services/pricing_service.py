"""
定价引擎
房价 + 税费 + 折扣 -> 报价

    total = base + tax + fee - discount  (>= 0)
    balance_due = max(0, total - prior_payments)
"""
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from hotel_booking.models.entities import ChargeType, ChargeScope, TaxFee
from hotel_booking.services.errors import BookingError, BookingErrorKind
from hotel_booking.services.money import percent_of
from hotel_booking.services.promo_service import PromoService, PromoDiscount
from hotel_booking.services.rate_service import RateService, stay_nights


@dataclass
class PriceQuote:
    """报价结果"""
    base_amount_cents: int
    tax_amount_cents: int
    fee_amount_cents: int
    discount_amount_cents: int
    total_amount_cents: int
    balance_due_cents: int
    nightly: List[Tuple[date, int]] = field(default_factory=list)
    promo: Optional[PromoDiscount] = None

    @property
    def nights(self) -> int:
        return len(self.nightly)

    def amounts(self) -> dict:
        return {
            "base_amount_cents": self.base_amount_cents,
            "tax_amount_cents": self.tax_amount_cents,
            "fee_amount_cents": self.fee_amount_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "total_amount_cents": self.total_amount_cents,
            "balance_due_cents": self.balance_due_cents,
        }


def apply_tax_fees(tax_fees: List[TaxFee], base_amount_cents: int,
                   nights: int, persons: int) -> Tuple[int, int]:
    """
    计算税费，返回 (tax, fee)

    百分比：按房费基数计算，名称含 tax 记为税，否则记为费
    固定额：按 scope 乘以晚数/人数，一律记为费
    每条规则单独取整
    """
    tax_amount = 0
    fee_amount = 0
    for rule in tax_fees:
        if rule.type == ChargeType.PERCENT:
            value = percent_of(base_amount_cents, rule.value)
            if "tax" in (rule.name or "").lower():
                tax_amount += value
            else:
                fee_amount += value
        elif rule.type == ChargeType.FIXED:
            multiplier = 1
            if rule.scope == ChargeScope.PER_NIGHT:
                multiplier = nights
            elif rule.scope == ChargeScope.PER_PERSON:
                multiplier = persons
            fee_amount += rule.value * multiplier
    return tax_amount, fee_amount


def settle_totals(base: int, tax: int, fee: int, discount: int,
                  prior_payments_cents: int = 0) -> Tuple[int, int, int]:
    """折扣截断后计算 (discount, total, balance_due)"""
    discount = max(0, min(discount, base + tax + fee))
    total = base + tax + fee - discount
    balance_due = max(0, total - prior_payments_cents)
    return discount, total, balance_due


class PricingService:
    """定价服务"""

    def __init__(self, db: Session):
        self.db = db
        self.rate_service = RateService(db)
        self.promo_service = PromoService(db)

    def quote(self, hotel_id: int, room_type_id: int, check_in_date: date,
              check_out_date: date, num_adults: int = 1, num_children: int = 0,
              promo_code: Optional[str] = None, rate_plan_id: Optional[int] = None,
              prior_payments_cents: int = 0, today: Optional[date] = None) -> PriceQuote:
        """计算报价"""
        if check_out_date <= check_in_date:
            raise BookingError(BookingErrorKind.INVALID_DATE_RANGE, "离店日期必须晚于入住日期")

        nights = stay_nights(check_in_date, check_out_date)
        rates = self.rate_service.get_nightly_rates(
            room_type_id, check_in_date, check_out_date, rate_plan_id
        )
        # 每晚恰好一条价格，缺口或重复都不做估价
        rate_dates = [rate.date for rate in rates]
        if len(rate_dates) != len(nights) or set(rate_dates) != set(nights):
            raise BookingError(BookingErrorKind.PRICING_UNAVAILABLE)

        nightly = [(rate.date, rate.price_cents) for rate in rates]
        base = sum(price for _, price in nightly)

        tax, fee = apply_tax_fees(
            self.rate_service.get_active_tax_fees(hotel_id),
            base,
            nights=len(nights),
            persons=(num_adults or 0) + (num_children or 0),
        )

        promo = None
        discount = 0
        if promo_code:
            promo = self.promo_service.validate(
                promo_code, hotel_id, base, nights=len(nights), today=today
            )
            discount = promo.discount_amount_cents

        discount, total, balance_due = settle_totals(base, tax, fee, discount, prior_payments_cents)
        if promo is not None:
            promo.discount_amount_cents = discount

        return PriceQuote(
            base_amount_cents=base,
            tax_amount_cents=tax,
            fee_amount_cents=fee,
            discount_amount_cents=discount,
            total_amount_cents=total,
            balance_due_cents=balance_due,
            nightly=nightly,
            promo=promo,
        )
