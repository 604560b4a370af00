"""
并发转正测试 - 文件型 SQLite，每个线程独立 Session
Covers: 最后一间房只被一个确认拿到, 优惠码额度在并发核销下不超限
"""
import threading
import pytest
from datetime import date, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from hotel_booking.database import Base
from hotel_booking.models.entities import (
    Booking, ChargeType, Hotel, PromoCode, RoomInventory, RoomRate, RoomType
)
from hotel_booking.services.booking_service import BookingService
from hotel_booking.services.draft_service import DraftService
from hotel_booking.services.errors import BookingError

NIGHT = date(2030, 5, 1)
RACERS = 4


# ── helpers ──────────────────────────────────────────────────────────

@pytest.fixture
def file_session_factory(tmp_path):
    """文件数据库，允许多个连接同时工作"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'bookings.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


def _seed(factory, rooms, promo_limit=None):
    """一晚房价与库存，每个参与者一条草稿；返回 (room_type_id, promo_id)"""
    db = factory()
    try:
        hotel = Hotel(name="并发酒店", currency_code="USD")
        db.add(hotel)
        db.flush()
        room_type = RoomType(hotel_id=hotel.id, name="大床房", max_occupancy=2)
        db.add(room_type)
        db.flush()
        db.add(RoomRate(room_type_id=room_type.id, date=NIGHT, price_cents=8000))
        db.add(RoomInventory(room_type_id=room_type.id, date=NIGHT, available_rooms=rooms))
        promo = None
        if promo_limit is not None:
            promo = PromoCode(hotel_id=hotel.id, code="RACE", type=ChargeType.FIXED,
                              value=1000, usage_limit=promo_limit)
            db.add(promo)
        db.commit()

        for i in range(RACERS):
            DraftService(db).upsert_draft(
                f"racer-{i}", hotel.id, room_type.id, NIGHT, NIGHT + timedelta(days=1),
                promo_code="RACE" if promo is not None else None,
            )
        return room_type.id, (promo.id if promo is not None else None)
    finally:
        db.close()


def _race(factory):
    """所有线程同时转正各自的草稿，返回每个线程的结果"""
    barrier = threading.Barrier(RACERS)
    results = []
    results_lock = threading.Lock()

    def worker(i):
        db = factory()
        try:
            barrier.wait()
            BookingService(db).convert_draft(
                f"racer-{i}", f"Guest {i}", f"guest{i}@example.com"
            )
            outcome = "ok"
        except BookingError as e:
            outcome = e.code
        except Exception as e:  # 记录下来让断言失败时可见
            outcome = repr(e)
        finally:
            db.close()
        with results_lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(RACERS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results


# ── tests ────────────────────────────────────────────────────────────

class TestConcurrentConfirmation:

    def test_last_room_is_sold_once(self, file_session_factory):
        room_type_id, _ = _seed(file_session_factory, rooms=1)

        results = _race(file_session_factory)

        assert len(results) == RACERS
        assert results.count("ok") == 1
        assert sorted(set(results) - {"ok"}) == ["booking.insufficientInventory"]

        db = file_session_factory()
        try:
            assert db.query(Booking).count() == 1
            assert db.query(RoomInventory).filter(
                RoomInventory.room_type_id == room_type_id,
                RoomInventory.date == NIGHT
            ).one().available_rooms == 0
        finally:
            db.close()

    def test_promo_usage_never_exceeds_limit(self, file_session_factory):
        room_type_id, promo_id = _seed(file_session_factory, rooms=RACERS, promo_limit=1)

        results = _race(file_session_factory)

        assert len(results) == RACERS
        assert results.count("ok") == 1
        assert sorted(set(results) - {"ok"}) == ["booking.promoCodeUsageLimitReached"]

        db = file_session_factory()
        try:
            promo = db.query(PromoCode).filter(PromoCode.id == promo_id).one()
            assert promo.usage_count == promo.usage_limit == 1
            assert db.query(Booking).count() == 1
            # 失败的转正不占房
            assert db.query(RoomInventory).filter(
                RoomInventory.room_type_id == room_type_id,
                RoomInventory.date == NIGHT
            ).one().available_rooms == RACERS - 1
        finally:
            db.close()
