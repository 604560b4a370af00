"""
路由公共工具：业务错误到 HTTP 错误的映射
"""
from fastapi import HTTPException, status
from hotel_booking.services.errors import BookingError, NOT_FOUND_KINDS, CONFLICT_KINDS


def to_http_exception(e: BookingError) -> HTTPException:
    """按错误类型映射为 404 / 409 / 400，响应体保留错误码"""
    if e.kind in NOT_FOUND_KINDS:
        code = status.HTTP_404_NOT_FOUND
    elif e.kind in CONFLICT_KINDS:
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=e.to_dict())
