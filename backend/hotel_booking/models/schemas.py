"""
Pydantic 请求/响应模型
金额一律以分（整数）传输
"""
from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, ConfigDict
from hotel_booking.models.entities import (
    BookingStatus, BookingSource, DraftStatus, PaymentStatus
)


# ============== 草稿 Schemas ==============

class DraftUpsert(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=100)
    hotel_id: int
    room_type_id: int
    check_in_date: date
    check_out_date: date
    num_adults: int = Field(default=1, ge=1)
    num_children: int = Field(default=0, ge=0)
    promo_code: Optional[str] = Field(None, max_length=50)
    rate_plan_id: Optional[int] = None
    contact_email: Optional[str] = Field(None, max_length=255)
    contact_phone: Optional[str] = Field(None, max_length=30)

    @field_validator('promo_code')
    @classmethod
    def blank_promo_is_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v


class NightlyItem(BaseModel):
    date: date
    price_cents: int
    model_config = ConfigDict(from_attributes=True)


class DraftResponse(BaseModel):
    id: int
    session_id: str
    reference_code: str
    status: DraftStatus
    hotel_id: int
    room_type_id: int
    rate_plan_id: Optional[int]
    check_in_date: date
    check_out_date: date
    num_adults: int
    num_children: int
    promo_code: Optional[str]
    contact_email: Optional[str]
    contact_phone: Optional[str]
    currency_code: str
    base_amount_cents: int
    tax_amount_cents: int
    fee_amount_cents: int
    discount_amount_cents: int
    total_amount_cents: int
    balance_due_cents: int
    items: List[NightlyItem] = []
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    model_config = ConfigDict(from_attributes=True)


class PendingDraftItem(BaseModel):
    id: int
    session_id: str
    reference_code: str
    hotel_id: int
    room_type_id: int
    check_in_date: date
    check_out_date: date
    num_adults: int
    num_children: int
    contact_email: Optional[str]
    contact_phone: Optional[str]
    currency_code: str
    total_amount_cents: int
    created_at: Optional[datetime]
    days_since_created: int
    is_expiring_soon: bool


class PendingDraftList(BaseModel):
    items: List[PendingDraftItem]
    total: int
    page: int
    limit: int


# ============== 预订 Schemas ==============

class ConvertDraftRequest(BaseModel):
    guest_name: Optional[str] = Field(None, max_length=200)
    contact_email: Optional[str] = Field(None, max_length=255)
    contact_phone: Optional[str] = Field(None, max_length=30)
    source: Optional[BookingSource] = None
    is_prepaid: bool = False
    payment_method: Optional[str] = Field(None, max_length=30)
    payment_processor: Optional[str] = Field(None, max_length=30)


class DirectBookingRequest(BaseModel):
    hotel_id: int
    room_type_id: int
    check_in_date: date
    check_out_date: date
    email: str = Field(..., min_length=3, max_length=255)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    num_adults: int = Field(default=1, ge=1)
    num_children: int = Field(default=0, ge=0)
    promo_code: Optional[str] = Field(None, max_length=50)
    rate_plan_id: Optional[int] = None
    is_prepaid: bool = False
    payment_method: Optional[str] = Field(None, max_length=30)
    payment_processor: Optional[str] = Field(None, max_length=30)
    source: Optional[BookingSource] = None
    notes: Optional[str] = None


class BookingItemResponse(BaseModel):
    date: date
    price_cents: int
    tax_amount_cents: int
    fee_amount_cents: int


class PaymentSummary(BaseModel):
    id: int
    amount_cents: int
    status: PaymentStatus
    method: Optional[str]
    processor: Optional[str]


class PromotionSummary(BaseModel):
    promo_code_id: int
    amount_cents: int


class BookingResponse(BaseModel):
    id: int
    reference_code: str
    hotel_id: int
    room_type_id: int
    customer_id: Optional[int]
    user_id: Optional[int]
    status: BookingStatus
    source: BookingSource
    check_in_date: date
    check_out_date: date
    num_adults: int
    num_children: int
    guest_name: Optional[str]
    contact_email: Optional[str]
    contact_phone: Optional[str]
    currency_code: str
    base_amount_cents: int
    tax_amount_cents: int
    fee_amount_cents: int
    discount_amount_cents: int
    total_amount_cents: int
    balance_due_cents: int
    notes: Optional[str]
    items: List[BookingItemResponse] = []
    payments: List[PaymentSummary] = []
    promotions: List[PromotionSummary] = []
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    created_at: Optional[datetime]
    model_config = ConfigDict(from_attributes=True)


class DirectBookingResponse(BaseModel):
    booking: BookingResponse
    customer_id: int
    is_new_customer: bool


class StatusChange(BaseModel):
    trigger: str = Field(..., min_length=1, max_length=20)
    reason: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


# ============== 支付 Schemas ==============

class PaymentCreate(BaseModel):
    amount_cents: int = Field(..., gt=0)
    method: str = Field(default="card", max_length=30)
    processor: str = Field(default="manual", max_length=30)
    processor_payment_id: Optional[str] = Field(None, max_length=100)


class PaymentResponse(BaseModel):
    id: int
    booking_id: int
    amount_cents: int
    currency_code: str
    status: PaymentStatus
    method: Optional[str]
    processor: Optional[str]
    processor_payment_id: Optional[str]
    created_at: Optional[datetime]
    balance_due_cents: int
