"""
Pytest 配置和共享 fixtures
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from datetime import date, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from hotel_booking.database import Base, get_db
from hotel_booking.models import entities  # noqa
from hotel_booking.models.entities import (
    Hotel, RoomType, RoomRate, RoomInventory, TaxFee, PromoCode,
    ChargeType, ChargeScope, UserRole
)
from hotel_booking.security.auth import create_access_token
from hotel_booking.main import app

# 测试入住区间起点，远离当前日期，避免与优惠码有效期相互影响
STAY_START = date(2030, 3, 1)
SEEDED_NIGHTS = 7
NIGHTLY_PRICE = 5000
ROOMS_PER_NIGHT = 3


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine):
    """创建数据库会话"""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """创建测试客户端"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ============== 认证相关 Fixtures ==============

@pytest.fixture
def staff_token():
    """前台员工 token"""
    return create_access_token(1, UserRole.FRONT_OFFICE)


@pytest.fixture
def customer_token():
    """在线客人 token"""
    return create_access_token(99, UserRole.CUSTOMER)


@pytest.fixture
def staff_auth_headers(staff_token):
    """返回前台认证的请求头"""
    return {"Authorization": f"Bearer {staff_token}"}


@pytest.fixture
def customer_auth_headers(customer_token):
    """返回客人认证的请求头"""
    return {"Authorization": f"Bearer {customer_token}"}


# ============== 实体相关 Fixtures ==============

@pytest.fixture
def hotel(db_session):
    """创建测试酒店"""
    h = Hotel(name="测试酒店", currency_code="USD")
    db_session.add(h)
    db_session.commit()
    db_session.refresh(h)
    return h


@pytest.fixture
def room_type(db_session, hotel):
    """创建测试房型"""
    rt = RoomType(hotel_id=hotel.id, name="标准间", max_occupancy=2)
    db_session.add(rt)
    db_session.commit()
    db_session.refresh(rt)
    return rt


@pytest.fixture
def nightly_rates(db_session, room_type):
    """从 STAY_START 起每晚 5000 分"""
    rates = []
    for offset in range(SEEDED_NIGHTS):
        rate = RoomRate(
            room_type_id=room_type.id,
            date=STAY_START + timedelta(days=offset),
            price_cents=NIGHTLY_PRICE,
        )
        db_session.add(rate)
        rates.append(rate)
    db_session.commit()
    return rates


@pytest.fixture
def inventory(db_session, room_type):
    """从 STAY_START 起每晚 3 间可售"""
    rows = []
    for offset in range(SEEDED_NIGHTS):
        row = RoomInventory(
            room_type_id=room_type.id,
            date=STAY_START + timedelta(days=offset),
            available_rooms=ROOMS_PER_NIGHT,
        )
        db_session.add(row)
        rows.append(row)
    db_session.commit()
    return rows


@pytest.fixture
def city_tax(db_session, hotel):
    """10% 城市税"""
    tax = TaxFee(
        hotel_id=hotel.id,
        name="City Tax",
        type=ChargeType.PERCENT,
        value=10,
        scope=ChargeScope.PER_STAY,
    )
    db_session.add(tax)
    db_session.commit()
    return tax


@pytest.fixture
def bookable_room(room_type, nightly_rates, inventory, city_tax):
    """价格、库存、税费齐备的房型"""
    return room_type


@pytest.fixture
def make_promo(db_session, hotel):
    """优惠码工厂"""
    def _make(code="SAVE10", type=ChargeType.FIXED, value=2000, **kwargs):
        promo = PromoCode(hotel_id=hotel.id, code=code, type=type, value=value, **kwargs)
        db_session.add(promo)
        db_session.commit()
        db_session.refresh(promo)
        return promo
    return _make


@pytest.fixture
def stay_start():
    return STAY_START


@pytest.fixture
def inventory_level(db_session):
    """读取某晚的最新库存"""
    def _level(room_type_id, night):
        db_session.expire_all()
        return db_session.query(RoomInventory).filter(
            RoomInventory.room_type_id == room_type_id,
            RoomInventory.date == night
        ).one().available_rooms
    return _level
