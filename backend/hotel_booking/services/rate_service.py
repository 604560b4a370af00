"""
房价与税费读取 - 只读
"""
from typing import List, Optional
from datetime import date, timedelta
from sqlalchemy.orm import Session
from hotel_booking.config import settings
from hotel_booking.models.entities import Hotel, RoomRate, TaxFee


def stay_nights(check_in_date: date, check_out_date: date) -> List[date]:
    """入住夜晚列表 [check_in, check_out)"""
    nights = []
    current_date = check_in_date
    while current_date < check_out_date:
        nights.append(current_date)
        current_date += timedelta(days=1)
    return nights


class RateService:
    """房价服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_nightly_rates(self, room_type_id: int, check_in_date: date,
                          check_out_date: date,
                          rate_plan_id: Optional[int] = None) -> List[RoomRate]:
        """获取入住区间内每晚的开放价格，按日期排序"""
        query = self.db.query(RoomRate).filter(
            RoomRate.room_type_id == room_type_id,
            RoomRate.date >= check_in_date,
            RoomRate.date < check_out_date,
            RoomRate.closed == False
        )
        if rate_plan_id is not None:
            query = query.filter(RoomRate.rate_plan_id == rate_plan_id)
        else:
            query = query.filter(RoomRate.rate_plan_id.is_(None))

        return query.order_by(RoomRate.date).all()

    def get_active_tax_fees(self, hotel_id: int) -> List[TaxFee]:
        """获取酒店启用中的税费规则"""
        return self.db.query(TaxFee).filter(
            TaxFee.hotel_id == hotel_id,
            TaxFee.is_active == True
        ).order_by(TaxFee.id).all()

    def get_hotel_currency(self, hotel_id: int) -> str:
        """酒店结算币种，未配置时使用默认币种"""
        hotel = self.db.query(Hotel).filter(Hotel.id == hotel_id).first()
        if hotel and hotel.currency_code:
            return hotel.currency_code
        return settings.DEFAULT_CURRENCY
