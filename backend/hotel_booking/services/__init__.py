# Booking Services
from hotel_booking.services.errors import BookingError, BookingErrorKind
from hotel_booking.services.rate_service import RateService
from hotel_booking.services.inventory_service import InventoryService
from hotel_booking.services.promo_service import PromoService
from hotel_booking.services.pricing_service import PricingService
from hotel_booking.services.draft_service import DraftService
from hotel_booking.services.customer_service import CustomerService
from hotel_booking.services.payment_service import PaymentService
from hotel_booking.services.booking_service import BookingService
from hotel_booking.services.pending_booking_service import PendingBookingService

__all__ = [
    'BookingError', 'BookingErrorKind', 'RateService', 'InventoryService',
    'PromoService', 'PricingService', 'DraftService', 'CustomerService',
    'PaymentService', 'BookingService', 'PendingBookingService'
]
