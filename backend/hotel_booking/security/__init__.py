# Security module
from hotel_booking.security.auth import (
    create_access_token, decode_token, CallerIdentity,
    get_current_user, get_optional_user, require_staff
)

__all__ = [
    'create_access_token', 'decode_token', 'CallerIdentity',
    'get_current_user', 'get_optional_user', 'require_staff'
]
