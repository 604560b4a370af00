# Booking Models
from hotel_booking.models.entities import (
    Hotel, RoomType, RoomRate, RoomInventory, TaxFee, PromoCode, Customer,
    BookingDraft, BookingDraftItem, Booking, BookingItem, Payment, BookingPromotion
)

__all__ = [
    'Hotel', 'RoomType', 'RoomRate', 'RoomInventory', 'TaxFee', 'PromoCode', 'Customer',
    'BookingDraft', 'BookingDraftItem', 'Booking', 'BookingItem', 'Payment', 'BookingPromotion'
]
