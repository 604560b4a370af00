"""
库存闸门
check 只读不占房；decrement / release 为单条条件 UPDATE，以受影响行数判断成败
"""
import logging
from typing import Iterable, List
from datetime import date
from sqlalchemy.orm import Session
from hotel_booking.models.entities import RoomInventory
from hotel_booking.services.errors import BookingError, BookingErrorKind

logger = logging.getLogger(__name__)


class InventoryService:
    """库存服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_open_inventory(self, room_type_id: int, nights: Iterable[date]) -> List[RoomInventory]:
        """获取指定夜晚未关闭的库存行"""
        nights = sorted(set(nights))
        if not nights:
            return []
        return self.db.query(RoomInventory).filter(
            RoomInventory.room_type_id == room_type_id,
            RoomInventory.date.in_(nights),
            RoomInventory.closed == False
        ).all()

    def check(self, room_type_id: int, nights: Iterable[date],
              require_available: bool = True,
              failure: BookingErrorKind = BookingErrorKind.INSUFFICIENT_INVENTORY) -> None:
        """
        可售检查（无副作用，不提供占房保证）

        Args:
            room_type_id: 房型
            nights: 入住夜晚
            require_available: 是否要求每晚 available_rooms > 0
            failure: 失败时抛出的错误类型
        """
        nights = sorted(set(nights))
        if not nights:
            raise BookingError(BookingErrorKind.INVALID_DATE_RANGE)

        rows = {row.date: row for row in self.get_open_inventory(room_type_id, nights)}
        for night in nights:
            row = rows.get(night)
            if row is None:
                raise BookingError(failure, f"{night.isoformat()} 无可售库存")
            if require_available and row.available_rooms <= 0:
                raise BookingError(failure, f"{night.isoformat()} 已满房")

    def decrement(self, room_type_id: int, nights: Iterable[date]) -> None:
        """
        扣减库存：每个不同夜晚原子地 -1

        条件 UPDATE 保证并发确认时最后一间房只会被一个请求拿到，
        失败方得到 INSUFFICIENT_INVENTORY。调用方负责回滚整个事务。
        """
        nights = sorted(set(nights))
        for night in nights:
            affected = self.db.query(RoomInventory).filter(
                RoomInventory.room_type_id == room_type_id,
                RoomInventory.date == night,
                RoomInventory.closed == False,
                RoomInventory.available_rooms > 0
            ).update(
                {RoomInventory.available_rooms: RoomInventory.available_rooms - 1},
                synchronize_session=False
            )
            if affected != 1:
                logger.warning(f"Inventory exhausted: room_type={room_type_id} date={night}")
                raise BookingError(
                    BookingErrorKind.INSUFFICIENT_INVENTORY,
                    f"{night.isoformat()} 库存已被占用"
                )
        logger.info(f"Inventory decremented: room_type={room_type_id} nights={len(nights)}")

    def release(self, room_type_id: int, nights: Iterable[date]) -> None:
        """释放库存：取消预订时每晚 +1"""
        for night in sorted(set(nights)):
            self.db.query(RoomInventory).filter(
                RoomInventory.room_type_id == room_type_id,
                RoomInventory.date == night
            ).update(
                {RoomInventory.available_rooms: RoomInventory.available_rooms + 1},
                synchronize_session=False
            )
        logger.info(f"Inventory released: room_type={room_type_id}")
