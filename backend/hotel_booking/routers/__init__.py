# API Routers
from hotel_booking.routers import drafts, bookings, payments

__all__ = ['drafts', 'bookings', 'payments']
