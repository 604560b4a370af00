"""
预订核心实体定义
金额统一使用整数分 (cents)，日期使用 date
Hotel / RoomType / RoomRate / TaxFee 由其他模块维护，核心只读
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, ForeignKey, Text,
    Enum as SQLEnum, Boolean, UniqueConstraint, Index, text
)
from sqlalchemy.orm import relationship, validates
from hotel_booking.database import Base


# ============== 枚举定义 ==============

class BookingStatus(str, Enum):
    """预订状态枚举"""
    RESERVED = "reserved"        # 已预留
    CONFIRMED = "confirmed"      # 已确认
    CHECKED_IN = "checked_in"    # 已入住
    CHECKED_OUT = "checked_out"  # 已退房
    CANCELLED = "cancelled"      # 已取消


class DraftStatus(str, Enum):
    """草稿状态"""
    DRAFT = "draft"


class BookingSource(str, Enum):
    """预订来源"""
    WEB = "web"                    # 官网/访客
    FRONT_OFFICE = "front_office"  # 前台录入
    ADMIN = "admin"                # 后台管理
    PHONE = "phone"                # 电话
    WALK_IN = "walk_in"            # 散客到店


class UserRole(str, Enum):
    """调用方角色（来自认证令牌）"""
    ADMIN = "admin"                # 系统管理员
    MANAGER = "manager"            # 经理
    FRONT_OFFICE = "front_office"  # 前台
    CUSTOMER = "customer"          # 注册客户


class PaymentStatus(str, Enum):
    """支付状态"""
    PENDING = "pending"
    SUCCEEDED = "succeeded"


class ChargeType(str, Enum):
    """税费/优惠类型"""
    PERCENT = "percent"  # 百分比
    FIXED = "fixed"      # 固定金额(分)


class ChargeScope(str, Enum):
    """固定税费的计费范围"""
    PER_STAY = "per_stay"
    PER_NIGHT = "per_night"
    PER_PERSON = "per_person"


# ============== 只读参考数据 ==============

class Hotel(Base):
    """酒店"""
    __tablename__ = "hotels"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    currency_code = Column(String(3), default="USD")
    created_at = Column(DateTime, default=datetime.utcnow)

    room_types = relationship("RoomType", back_populates="hotel")


class RoomType(Base):
    """房型"""
    __tablename__ = "room_types"

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)
    name = Column(String(50), nullable=False)
    max_occupancy = Column(Integer, default=2)
    created_at = Column(DateTime, default=datetime.utcnow)

    hotel = relationship("Hotel", back_populates="room_types")


class RoomRate(Base):
    """
    房型每晚价格
    rate_plan_id 为空表示基础价
    NULL 不参与唯一约束，基础价由部分唯一索引保证每晚一条
    """
    __tablename__ = "room_rates"
    __table_args__ = (
        UniqueConstraint("room_type_id", "date", "rate_plan_id", name="uq_room_rate"),
        Index(
            "uq_room_rate_base", "room_type_id", "date", unique=True,
            sqlite_where=text("rate_plan_id IS NULL"),
            postgresql_where=text("rate_plan_id IS NULL"),
        ),
        Index("idx_room_rate_date", "date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    date = Column(Date, nullable=False)
    rate_plan_id = Column(Integer, nullable=True)
    price_cents = Column(Integer, nullable=False, default=0)
    closed = Column(Boolean, default=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class RoomInventory(Base):
    """
    房型每日库存
    available_rooms 只在预订确认时扣减，取消时释放，永不为负
    """
    __tablename__ = "room_inventory"

    room_type_id = Column(Integer, ForeignKey("room_types.id"), primary_key=True)
    date = Column(Date, primary_key=True)
    available_rooms = Column(Integer, nullable=False, default=0)
    closed = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class TaxFee(Base):
    """酒店税费规则"""
    __tablename__ = "tax_fees"

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    type = Column(SQLEnum(ChargeType), nullable=False)
    value = Column(Integer, nullable=False, default=0)  # 百分比 0..100 或分
    scope = Column(SQLEnum(ChargeScope), nullable=False, default=ChargeScope.PER_STAY)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class PromoCode(Base):
    """
    优惠码
    code 写入时统一为大写
    usage_count 每次成功核销恰好 +1，且不超过 usage_limit
    """
    __tablename__ = "promo_codes"
    __table_args__ = (
        UniqueConstraint("hotel_id", "code", name="uq_promo_code"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)
    code = Column(String(50), nullable=False)
    type = Column(SQLEnum(ChargeType), nullable=False)
    value = Column(Integer, nullable=False, default=0)
    start_date = Column(Date)
    end_date = Column(Date)
    min_nights = Column(Integer)
    min_amount_cents = Column(Integer)
    max_discount_cents = Column(Integer)
    usage_limit = Column(Integer)
    usage_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @validates("code")
    def normalize_code(self, key, value):
        # 统一存大写，唯一约束与不区分大小写的查找保持一致
        return value.strip().upper() if value else value


# ============== 客户 ==============

class Customer(Base):
    """客户（按邮箱唯一）"""
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100))
    phone = Column(String(30))
    last_booking_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    bookings = relationship("Booking", back_populates="customer")


# ============== 草稿 ==============

class BookingDraft(Base):
    """
    预订草稿 - 每个访客会话最多一条
    version 为乐观锁版本号，防止并发 upsert 交错
    """
    __tablename__ = "booking_drafts"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(100), unique=True, nullable=False)
    reference_code = Column(String(30), nullable=False)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    rate_plan_id = Column(Integer)
    status = Column(SQLEnum(DraftStatus), nullable=False, default=DraftStatus.DRAFT)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    num_adults = Column(Integer, nullable=False, default=1)
    num_children = Column(Integer, nullable=False, default=0)
    base_amount_cents = Column(Integer, nullable=False, default=0)
    tax_amount_cents = Column(Integer, nullable=False, default=0)
    fee_amount_cents = Column(Integer, nullable=False, default=0)
    discount_amount_cents = Column(Integer, nullable=False, default=0)
    total_amount_cents = Column(Integer, nullable=False, default=0)
    balance_due_cents = Column(Integer, nullable=False, default=0)
    currency_code = Column(String(3), nullable=False, default="USD")
    promo_code = Column(String(50))
    contact_email = Column(String(255))
    contact_phone = Column(String(30))
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship(
        "BookingDraftItem",
        back_populates="draft",
        cascade="all, delete-orphan",
        order_by="BookingDraftItem.date",
    )

    __mapper_args__ = {"version_id_col": version}


class BookingDraftItem(Base):
    """草稿每晚明细"""
    __tablename__ = "booking_draft_items"

    id = Column(Integer, primary_key=True, index=True)
    booking_draft_id = Column(
        Integer, ForeignKey("booking_drafts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date = Column(Date, nullable=False)
    price_cents = Column(Integer, nullable=False, default=0)
    tax_amount_cents = Column(Integer, nullable=False, default=0)
    fee_amount_cents = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    draft = relationship("BookingDraft", back_populates="items")


# ============== 正式预订 ==============

class Booking(Base):
    """
    正式预订 - 聚合根
    金额结构与草稿一致
    """
    __tablename__ = "bookings"
    __table_args__ = (
        Index("idx_booking_dates", "check_in_date", "check_out_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    reference_code = Column(String(30), unique=True, nullable=False)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"))
    user_id = Column(Integer)  # 操作人/登录用户
    status = Column(SQLEnum(BookingStatus), nullable=False, default=BookingStatus.RESERVED)
    source = Column(SQLEnum(BookingSource), nullable=False, default=BookingSource.WEB)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    num_adults = Column(Integer, nullable=False, default=1)
    num_children = Column(Integer, nullable=False, default=0)
    base_amount_cents = Column(Integer, nullable=False, default=0)
    tax_amount_cents = Column(Integer, nullable=False, default=0)
    fee_amount_cents = Column(Integer, nullable=False, default=0)
    discount_amount_cents = Column(Integer, nullable=False, default=0)
    total_amount_cents = Column(Integer, nullable=False, default=0)
    balance_due_cents = Column(Integer, nullable=False, default=0)
    currency_code = Column(String(3), nullable=False, default="USD")
    guest_name = Column(String(200))
    contact_email = Column(String(255))
    contact_phone = Column(String(30))
    notes = Column(Text)
    cancelled_at = Column(DateTime)
    cancellation_reason = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", back_populates="bookings")
    items = relationship(
        "BookingItem", back_populates="booking",
        cascade="all, delete-orphan", order_by="BookingItem.date",
    )
    payments = relationship("Payment", back_populates="booking", cascade="all, delete-orphan")
    promotions = relationship("BookingPromotion", back_populates="booking", cascade="all, delete-orphan")


class BookingItem(Base):
    """预订每晚明细"""
    __tablename__ = "booking_items"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    price_cents = Column(Integer, nullable=False, default=0)
    tax_amount_cents = Column(Integer, nullable=False, default=0)
    fee_amount_cents = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    booking = relationship("Booking", back_populates="items")


class Payment(Base):
    """支付记录"""
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("processor", "processor_payment_id", name="uq_payment_processor_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    amount_cents = Column(Integer, nullable=False, default=0)
    currency_code = Column(String(3), nullable=False, default="USD")
    status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    method = Column(String(30), nullable=False, default="card")
    processor = Column(String(30), nullable=False, default="manual")
    processor_payment_id = Column(String(100))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    booking = relationship("Booking", back_populates="payments")


class BookingPromotion(Base):
    """优惠核销记录（仅折扣 > 0 时写入）"""
    __tablename__ = "booking_promotions"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    promo_code_id = Column(Integer, ForeignKey("promo_codes.id"), nullable=False)
    amount_cents = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    booking = relationship("Booking", back_populates="promotions")
    promo_code = relationship("PromoCode")
