"""
Tests for hotel_booking/services/booking_service.py
Covers: convert_draft（整体事务）, create_direct_booking, transition_status, cancel_booking
"""
import pytest
from datetime import timedelta

from hotel_booking.models.entities import (
    Booking, BookingDraft, BookingDraftItem, BookingItem, BookingPromotion, BookingSource, BookingStatus,
    ChargeType, Customer, Payment, PaymentStatus, PromoCode, RoomInventory, UserRole
)
from hotel_booking.services.booking_service import BookingService, infer_source
from hotel_booking.services.draft_service import DraftService
from hotel_booking.services.errors import BookingError, BookingErrorKind


# ── helpers ──────────────────────────────────────────────────────────

def _draft(db, hotel, room_type, start, session_id="sess-1", nights=2, **kwargs):
    return DraftService(db).upsert_draft(
        session_id, hotel.id, room_type.id, start, start + timedelta(days=nights), **kwargs
    )


def _convert(db, session_id="sess-1", **kwargs):
    kwargs.setdefault("guest_name", "张三")
    kwargs.setdefault("contact_email", "zhangsan@example.com")
    return BookingService(db).convert_draft(session_id, **kwargs)


def _direct(db, hotel, room_type, start, nights=2, email="walkin@example.com", **kwargs):
    kwargs.setdefault("first_name", "Li")
    return BookingService(db).create_direct_booking(
        hotel.id, room_type.id, start, start + timedelta(days=nights), email=email, **kwargs
    )


def _set_inventory(db, room_type, night, available):
    db.query(RoomInventory).filter(
        RoomInventory.room_type_id == room_type.id,
        RoomInventory.date == night
    ).update({RoomInventory.available_rooms: available}, synchronize_session=False)
    db.commit()


# ── tests ────────────────────────────────────────────────────────────

class TestConvertDraft:

    def test_success(self, db_session, hotel, bookable_room, stay_start, inventory_level):
        draft = _draft(db_session, hotel, bookable_room, stay_start, contact_phone="555-0100")
        draft_total = draft.total_amount_cents

        booking = _convert(db_session)

        assert booking.reference_code.startswith("BK-")
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.source == BookingSource.WEB
        assert booking.total_amount_cents == draft_total == 11000
        assert booking.balance_due_cents == 11000
        assert booking.guest_name == "张三"
        assert booking.contact_phone == "555-0100"
        assert [item.date for item in booking.items] == [stay_start, stay_start + timedelta(days=1)]

        assert DraftService(db_session).get_draft("sess-1") is None
        assert inventory_level(bookable_room.id, stay_start) == 2
        assert inventory_level(bookable_room.id, stay_start + timedelta(days=1)) == 2
        assert inventory_level(bookable_room.id, stay_start + timedelta(days=2)) == 3

    def test_draft_not_found_mutates_nothing(self, db_session, hotel, bookable_room,
                                             stay_start, inventory_level):
        with pytest.raises(BookingError) as exc:
            _convert(db_session, session_id="ghost")
        assert exc.value.kind == BookingErrorKind.DRAFT_NOT_FOUND

        assert db_session.query(Booking).count() == 0
        assert inventory_level(bookable_room.id, stay_start) == 3

    def test_falls_back_to_latest_draft_by_email(self, db_session, hotel, bookable_room,
                                                  stay_start, inventory_level):
        _draft(db_session, hotel, bookable_room, stay_start, session_id="phone", nights=1,
               contact_email="zhangsan@example.com")
        _draft(db_session, hotel, bookable_room, stay_start, session_id="laptop", nights=2,
               contact_email="zhangsan@example.com")

        booking = _convert(db_session, session_id="new-device", contact_email="ZhangSan@Example.com")

        assert len(booking.items) == 2
        assert DraftService(db_session).get_draft("laptop") is None
        assert DraftService(db_session).get_draft("phone") is not None
        assert inventory_level(bookable_room.id, stay_start + timedelta(days=1)) == 2

    def test_email_fallback_needs_matching_draft(self, db_session, hotel, bookable_room, stay_start):
        _draft(db_session, hotel, bookable_room, stay_start, contact_email="other@example.com")

        with pytest.raises(BookingError) as exc:
            _convert(db_session, session_id="new-device")
        assert exc.value.kind == BookingErrorKind.DRAFT_NOT_FOUND
        assert db_session.query(Booking).count() == 0

    def test_items_must_cover_every_night(self, db_session, hotel, bookable_room,
                                          stay_start, inventory_level):
        draft = _draft(db_session, hotel, bookable_room, stay_start)
        second_night = stay_start + timedelta(days=1)
        # 两条明细都落在第一晚，第二晚没有明细
        db_session.query(BookingDraftItem).filter(
            BookingDraftItem.booking_draft_id == draft.id,
            BookingDraftItem.date == second_night
        ).update({BookingDraftItem.date: stay_start}, synchronize_session=False)
        db_session.commit()
        db_session.expire_all()

        with pytest.raises(BookingError) as exc:
            _convert(db_session)
        assert exc.value.kind == BookingErrorKind.INVALID_DATE_RANGE

        assert db_session.query(Booking).count() == 0
        assert inventory_level(bookable_room.id, stay_start) == 3
        assert inventory_level(bookable_room.id, second_night) == 3
        assert DraftService(db_session).get_draft("sess-1") is not None

    def test_missing_item_night_rejected(self, db_session, hotel, bookable_room, stay_start):
        draft = _draft(db_session, hotel, bookable_room, stay_start, nights=3)
        db_session.query(BookingDraftItem).filter(
            BookingDraftItem.booking_draft_id == draft.id,
            BookingDraftItem.date == stay_start + timedelta(days=2)
        ).delete(synchronize_session=False)
        db_session.commit()
        db_session.expire_all()

        with pytest.raises(BookingError) as exc:
            _convert(db_session)
        assert exc.value.kind == BookingErrorKind.INVALID_DATE_RANGE
        assert db_session.query(Booking).count() == 0

    @pytest.mark.parametrize("guest_name,email", [
        (None, "a@example.com"),
        ("  ", "a@example.com"),
        ("张三", None),
        ("张三", ""),
    ])
    def test_missing_guest_info(self, db_session, hotel, bookable_room, stay_start, guest_name, email):
        _draft(db_session, hotel, bookable_room, stay_start)
        with pytest.raises(BookingError) as exc:
            _convert(db_session, guest_name=guest_name, contact_email=email)
        assert exc.value.kind == BookingErrorKind.MISSING_GUEST_INFO
        assert DraftService(db_session).get_draft("sess-1") is not None

    def test_promo_redeemed_once(self, db_session, hotel, bookable_room, stay_start, make_promo):
        promo = make_promo("SAVE10", ChargeType.FIXED, 2000, max_discount_cents=1500, usage_limit=5)
        _draft(db_session, hotel, bookable_room, stay_start, promo_code="SAVE10")

        booking = _convert(db_session)

        assert booking.discount_amount_cents == 1500
        assert booking.total_amount_cents == 9500
        db_session.refresh(promo)
        assert promo.usage_count == 1
        record = db_session.query(BookingPromotion).one()
        assert record.booking_id == booking.id
        assert record.amount_cents == 1500

    def test_promo_exhausted_after_drafting(self, db_session, hotel, bookable_room,
                                            stay_start, make_promo, inventory_level):
        promo = make_promo(usage_limit=1)
        _draft(db_session, hotel, bookable_room, stay_start, promo_code="SAVE10")
        promo.usage_count = 1
        db_session.commit()

        with pytest.raises(BookingError) as exc:
            _convert(db_session)
        assert exc.value.kind == BookingErrorKind.PROMO_CODE_USAGE_LIMIT_REACHED
        assert db_session.query(Booking).count() == 0
        assert inventory_level(bookable_room.id, stay_start) == 3

    def test_last_room_goes_to_first_confirmation(self, db_session, hotel, bookable_room,
                                                  stay_start, inventory_level):
        _set_inventory(db_session, bookable_room, stay_start, 1)
        _draft(db_session, hotel, bookable_room, stay_start, session_id="a", nights=1)
        _draft(db_session, hotel, bookable_room, stay_start, session_id="b", nights=1)

        _convert(db_session, session_id="a")
        with pytest.raises(BookingError) as exc:
            _convert(db_session, session_id="b", contact_email="b@example.com")

        assert exc.value.kind == BookingErrorKind.INSUFFICIENT_INVENTORY
        assert db_session.query(Booking).count() == 1
        assert inventory_level(bookable_room.id, stay_start) == 0
        assert DraftService(db_session).get_draft("b") is not None

    def test_failed_decrement_rolls_back_everything(self, db_session, hotel, bookable_room,
                                                    stay_start, make_promo, inventory_level,
                                                    monkeypatch):
        promo = make_promo(usage_limit=5)
        _draft(db_session, hotel, bookable_room, stay_start, promo_code="SAVE10")
        # 第二晚在检查之后被其他请求抢光
        _set_inventory(db_session, bookable_room, stay_start + timedelta(days=1), 0)

        service = BookingService(db_session)
        monkeypatch.setattr(service.inventory_service, "check", lambda *args, **kwargs: None)

        with pytest.raises(BookingError) as exc:
            service.convert_draft("sess-1", "张三", "zhangsan@example.com")
        assert exc.value.kind == BookingErrorKind.INSUFFICIENT_INVENTORY

        assert db_session.query(Booking).count() == 0
        assert db_session.query(BookingItem).count() == 0
        assert db_session.query(BookingPromotion).count() == 0
        assert db_session.query(PromoCode).filter(PromoCode.id == promo.id).one().usage_count == 0
        assert inventory_level(bookable_room.id, stay_start) == 3
        assert inventory_level(bookable_room.id, stay_start + timedelta(days=1)) == 0
        assert db_session.query(BookingDraft).count() == 1

    def test_prepaid_card_payment_succeeds(self, db_session, hotel, bookable_room, stay_start):
        _draft(db_session, hotel, bookable_room, stay_start)
        booking = _convert(db_session, is_prepaid=True, payment_method="card",
                           payment_processor="stripe")

        payment = db_session.query(Payment).one()
        assert payment.status == PaymentStatus.SUCCEEDED
        assert payment.amount_cents == 11000
        assert booking.balance_due_cents == 0

    def test_prepaid_pay_at_hotel_stays_pending(self, db_session, hotel, bookable_room, stay_start):
        _draft(db_session, hotel, bookable_room, stay_start)
        booking = _convert(db_session, is_prepaid=True, payment_method="cash")

        payment = db_session.query(Payment).one()
        assert payment.status == PaymentStatus.PENDING
        assert booking.balance_due_cents == 11000

    def test_source_inferred_from_caller(self, db_session, hotel, bookable_room, stay_start):
        _draft(db_session, hotel, bookable_room, stay_start)
        booking = _convert(db_session, caller_id=1, caller_role=UserRole.FRONT_OFFICE)
        assert booking.source == BookingSource.FRONT_OFFICE
        assert booking.user_id == 1


class TestDirectBooking:

    def test_new_customer(self, db_session, hotel, bookable_room, stay_start, inventory_level):
        result = _direct(db_session, hotel, bookable_room, stay_start,
                         first_name="Li", last_name="Lei", phone="555-0101")

        booking = result["booking"]
        assert result["is_new_customer"] is True
        assert result["customer"].email == "walkin@example.com"
        assert booking.customer_id == result["customer"].id
        assert booking.guest_name == "Li Lei"
        assert booking.source == BookingSource.WALK_IN
        assert booking.total_amount_cents == 11000
        assert result["customer"].last_booking_at is not None
        assert inventory_level(bookable_room.id, stay_start) == 2

    def test_existing_customer_reused(self, db_session, hotel, bookable_room, stay_start):
        first = _direct(db_session, hotel, bookable_room, stay_start)
        second = _direct(db_session, hotel, bookable_room, stay_start + timedelta(days=3),
                         email="WalkIn@Example.com")

        assert second["is_new_customer"] is False
        assert second["customer"].id == first["customer"].id
        assert db_session.query(Customer).count() == 1

    def test_missing_first_name(self, db_session, hotel, bookable_room, stay_start):
        with pytest.raises(BookingError) as exc:
            _direct(db_session, hotel, bookable_room, stay_start, first_name="")
        assert exc.value.kind == BookingErrorKind.MISSING_GUEST_INFO
        assert db_session.query(Customer).count() == 0

    def test_sold_out_rolls_back_new_customer(self, db_session, hotel, bookable_room, stay_start):
        _set_inventory(db_session, bookable_room, stay_start, 0)
        with pytest.raises(BookingError) as exc:
            _direct(db_session, hotel, bookable_room, stay_start)
        assert exc.value.kind == BookingErrorKind.INSUFFICIENT_INVENTORY
        assert db_session.query(Customer).count() == 0

    def test_direct_with_promo(self, db_session, hotel, bookable_room, stay_start, make_promo):
        promo = make_promo("SAVE10", ChargeType.FIXED, 2000, max_discount_cents=1500)
        result = _direct(db_session, hotel, bookable_room, stay_start, promo_code="SAVE10",
                         notes="晚到")

        assert result["booking"].total_amount_cents == 9500
        assert result["booking"].notes == "晚到"
        db_session.refresh(promo)
        assert promo.usage_count == 1


class TestStatusTransitions:

    def test_lifecycle(self, db_session, hotel, bookable_room, stay_start):
        booking_id = _direct(db_session, hotel, bookable_room, stay_start)["booking"].id
        svc = BookingService(db_session)

        assert svc.transition_status(booking_id, "check_in").status == BookingStatus.CHECKED_IN
        assert svc.transition_status(booking_id, "check_out").status == BookingStatus.CHECKED_OUT

        with pytest.raises(BookingError) as exc:
            svc.cancel_booking(booking_id)
        assert exc.value.kind == BookingErrorKind.INVALID_STATUS_TRANSITION

    def test_unknown_trigger(self, db_session, hotel, bookable_room, stay_start):
        booking_id = _direct(db_session, hotel, bookable_room, stay_start)["booking"].id
        with pytest.raises(BookingError) as exc:
            BookingService(db_session).transition_status(booking_id, "teleport")
        assert exc.value.kind == BookingErrorKind.INVALID_STATUS_TRANSITION

    def test_cancel_releases_inventory(self, db_session, hotel, bookable_room, stay_start,
                                       inventory_level):
        booking_id = _direct(db_session, hotel, bookable_room, stay_start)["booking"].id
        assert inventory_level(bookable_room.id, stay_start) == 2

        booking = BookingService(db_session).cancel_booking(booking_id, reason="行程变更")

        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancellation_reason == "行程变更"
        assert booking.cancelled_at is not None
        assert inventory_level(bookable_room.id, stay_start) == 3

    def test_booking_not_found(self, db_session):
        with pytest.raises(BookingError) as exc:
            BookingService(db_session).transition_status(999, "check_in")
        assert exc.value.kind == BookingErrorKind.BOOKING_NOT_FOUND


class TestInferSource:

    def test_explicit_source_wins(self):
        assert infer_source(BookingSource.PHONE, UserRole.ADMIN) == BookingSource.PHONE

    def test_role_mapping(self):
        assert infer_source(None, UserRole.MANAGER) == BookingSource.ADMIN
        assert infer_source(None, UserRole.CUSTOMER) == BookingSource.WEB

    def test_default(self):
        assert infer_source(None, None, BookingSource.WALK_IN) == BookingSource.WALK_IN
