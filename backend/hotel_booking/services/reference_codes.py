"""
预订参考号生成
格式：前缀-毫秒时间戳后6位-4位随机 base36，例如 BK-512345-7QZ0
唯一性由数据库唯一索引保证，这里只做碰撞重试
"""
import random
import string
import time
from typing import Callable

DRAFT_PREFIX = "DR"
BOOKING_PREFIX = "BK"

_ALPHABET = string.digits + string.ascii_uppercase
MAX_ATTEMPTS = 5


def generate_reference_code(prefix: str) -> str:
    """生成参考号（非加密随机）"""
    millis = str(int(time.time() * 1000))[-6:]
    suffix = "".join(random.choices(_ALPHABET, k=4))
    return f"{prefix}-{millis}-{suffix}"


def generate_unique_reference_code(prefix: str, exists: Callable[[str], bool]) -> str:
    """生成未被占用的参考号"""
    for _ in range(MAX_ATTEMPTS):
        code = generate_reference_code(prefix)
        if not exists(code):
            return code
    raise RuntimeError(f"无法生成唯一参考号 (prefix={prefix})")
