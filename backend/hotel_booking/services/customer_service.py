"""
客户服务
按邮箱查找或创建客户，供直接预订使用
"""
import logging
from datetime import datetime
from typing import Optional, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session
from hotel_booking.models.entities import Customer
from hotel_booking.services.errors import BookingError, BookingErrorKind

logger = logging.getLogger(__name__)


class CustomerService:
    """客户服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_customer(self, customer_id: int) -> Optional[Customer]:
        """获取单个客户"""
        return self.db.query(Customer).filter(Customer.id == customer_id).first()

    def get_customer_by_email(self, email: str) -> Optional[Customer]:
        """根据邮箱获取客户（不区分大小写）"""
        return self.db.query(Customer).filter(
            func.lower(Customer.email) == email.strip().lower()
        ).first()

    def find_or_create(self, email: str, first_name: str,
                       last_name: Optional[str] = None,
                       phone: Optional[str] = None) -> Tuple[Customer, bool]:
        """
        查找或创建客户

        不提交事务，由调用方统一提交。

        Returns:
            (customer, is_new)
        """
        if not email or not email.strip() or not first_name or not first_name.strip():
            raise BookingError(BookingErrorKind.MISSING_GUEST_INFO)

        customer = self.get_customer_by_email(email)
        if customer:
            # 补全缺失的联系方式
            if phone and not customer.phone:
                customer.phone = phone
            return customer, False

        customer = Customer(
            email=email.strip().lower(),
            first_name=first_name.strip(),
            last_name=last_name,
            phone=phone,
        )
        self.db.add(customer)
        self.db.flush()
        logger.info(f"Customer created: {customer.id}")
        return customer, True

    def touch_last_booking(self, customer: Customer, when: Optional[datetime] = None) -> None:
        """更新客户最近预订时间"""
        customer.last_booking_at = when or datetime.utcnow()
