"""
Tests for the booking lifecycle manager.

Covers creation, vendor decisions, fulfilment, cancellation, visibility and
the post trip aggregates, always asserting the history trail.
"""

from datetime import datetime, timedelta, timezone

import pytest

from cabhub.src import exceptions, lifecycle
from cabhub.src.db import (
    Booking,
    BookingHistory,
    CompanyVendorAssociation,
    Driver,
    Vehicle,
    Vendor,
)
from cabhub.src.enums import BookingStatus, BookingVisibility, PaymentStatus
from cabhub.src.lifecycle import BookingFilter


def fetch(session, model, pk):
    return session.get(model, pk, populate_existing=True)


def history(session, bookingId):
    rows = (
        session.query(BookingHistory)
        .filter(BookingHistory.booking_id == bookingId)
        .order_by(BookingHistory.id.asc())
        .all()
    )
    return [row.status for row in rows]


@pytest.fixture
def booking(session, world, booking_input):
    return lifecycle.createBooking(session, world.acme.actor, booking_input)


@pytest.fixture
def accepted(session, world, booking):
    return lifecycle.acceptBooking(session, booking.id, world.swift.actor)


@pytest.fixture
def assigned(session, world, accepted):
    return lifecycle.assignDriverAndVehicle(
        session,
        accepted.id,
        world.swift.actor,
        world.swift.driver.id,
        world.swift.vehicle.id,
    )


@pytest.fixture
def ongoing(session, world, assigned):
    return lifecycle.startTrip(session, assigned.id, world.swift.actor)


@pytest.fixture
def completed(session, world, ongoing):
    return lifecycle.endTrip(session, ongoing.id, world.swift.actor, 450)


# ============================================================================
# CREATION
# ============================================================================


class TestCreateBooking:
    def test_new_booking_is_pending_and_associated(self, session, world, booking):
        assert booking.status == BookingStatus.PENDING
        assert booking.visibility == BookingVisibility.ASSOCIATED
        assert booking.company_id == world.acme.company.id
        assert booking.vendor_id is None
        assert booking.booking_number.startswith("BK-")
        assert booking.created_at is not None
        assert booking.updated_at is not None
        assert history(session, booking.id) == []

    def test_booking_numbers_are_unique(self, session, world, booking_input):
        numbers = {
            lifecycle.createBooking(session, world.acme.actor, booking_input).booking_number
            for _ in range(5)
        }
        assert len(numbers) == 5

    @pytest.mark.parametrize(
        "field", ["guest_name", "guest_phone", "pickup_location", "dropoff_location"]
    )
    def test_blank_required_field_is_rejected(
        self, session, world, booking_input, field
    ):
        data = booking_input.model_copy(update={field: "   "})
        with pytest.raises(exceptions.MissingParameter):
            lifecycle.createBooking(session, world.acme.actor, data)
        assert session.query(Booking).count() == 0

    def test_missing_pickup_datetime_is_rejected(self, session, world, booking_input):
        data = booking_input.model_copy(update={"pickup_datetime": None})
        with pytest.raises(exceptions.MissingParameter):
            lifecycle.createBooking(session, world.acme.actor, data)

    def test_past_pickup_is_rejected(self, session, world, booking_input):
        data = booking_input.model_copy(
            update={"pickup_datetime": datetime.now(timezone.utc) - timedelta(hours=1)}
        )
        with pytest.raises(exceptions.InvalidValue):
            lifecycle.createBooking(session, world.acme.actor, data)

    def test_naive_pickup_is_taken_as_utc(self, session, world, booking_input):
        naive = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)
        data = booking_input.model_copy(update={"pickup_datetime": naive})
        booking = lifecycle.createBooking(session, world.acme.actor, data)
        assert booking.status == BookingStatus.PENDING

    def test_negative_fare_is_rejected(self, session, world, booking_input):
        data = booking_input.model_copy(update={"fare_amount": -1})
        with pytest.raises(exceptions.InvalidValue):
            lifecycle.createBooking(session, world.acme.actor, data)

    def test_vendor_cannot_create(self, session, world, booking_input):
        with pytest.raises(exceptions.NoPermission):
            lifecycle.createBooking(session, world.swift.actor, booking_input)

    def test_creation_is_published(self, session, world, booking_input, mock_redis):
        received = []
        lifecycle.notifier.subscribe(Booking.__tablename__, received.append)
        booking = lifecycle.createBooking(session, world.acme.actor, booking_input)
        assert received == [
            {"table": "booking", "operation": "INSERT", "id": booking.id}
        ]
        mock_redis.publish.assert_called_once()


# ============================================================================
# ACCEPT / REJECT
# ============================================================================


class TestAcceptBooking:
    def test_associated_vendor_accepts(self, session, world, accepted):
        assert accepted.status == BookingStatus.ACCEPTED
        assert accepted.vendor_id == world.swift.vendor.id
        assert history(session, accepted.id) == [BookingStatus.ACCEPTED]

    def test_history_records_the_account(self, session, world, accepted):
        row = session.query(BookingHistory).one()
        assert row.changed_by == world.swift.account.id

    def test_retry_by_same_vendor_is_a_no_op(self, session, world, accepted):
        again = lifecycle.acceptBooking(session, accepted.id, world.swift.actor)
        assert again.status == BookingStatus.ACCEPTED
        assert again.vendor_id == world.swift.vendor.id
        assert history(session, accepted.id) == [BookingStatus.ACCEPTED]

    def test_second_vendor_gets_already_assigned(self, session, world, accepted):
        with pytest.raises(exceptions.AlreadyAssigned):
            lifecycle.acceptBooking(session, accepted.id, world.metro.actor)
        assert fetch(session, Booking, accepted.id).vendor_id == world.swift.vendor.id
        assert history(session, accepted.id) == [BookingStatus.ACCEPTED]

    def test_unassociated_vendor_cannot_accept_associated_booking(
        self, session, world, booking
    ):
        with pytest.raises(exceptions.InvalidIdentifier):
            lifecycle.acceptBooking(session, booking.id, world.rapid.actor)
        stored = fetch(session, Booking, booking.id)
        assert stored.status == BookingStatus.PENDING
        assert stored.vendor_id is None
        assert history(session, booking.id) == []

    def test_inactive_association_hides_booking(self, session, world, booking):
        association = (
            session.query(CompanyVendorAssociation)
            .filter(CompanyVendorAssociation.vendor_id == world.swift.vendor.id)
            .one()
        )
        association.is_active = False
        session.commit()
        with pytest.raises(exceptions.InvalidIdentifier):
            lifecycle.acceptBooking(session, booking.id, world.swift.actor)

    def test_open_market_booking_is_accepted_by_anyone(self, session, world, booking):
        lifecycle.openToMarket(session, booking.id, world.acme.actor)
        accepted = lifecycle.acceptBooking(session, booking.id, world.rapid.actor)
        assert accepted.vendor_id == world.rapid.vendor.id

    def test_cancelled_booking_cannot_be_accepted(self, session, world, booking):
        lifecycle.cancelBooking(session, booking.id, world.acme.actor)
        with pytest.raises(exceptions.InvalidStateTransition):
            lifecycle.acceptBooking(session, booking.id, world.swift.actor)

    def test_unknown_booking(self, session, world):
        with pytest.raises(exceptions.InvalidIdentifier):
            lifecycle.acceptBooking(session, 999, world.swift.actor)

    def test_inactive_vendor_cannot_accept(self, session, world, booking):
        vendor = session.get(Vendor, world.swift.vendor.id)
        vendor.is_active = False
        session.commit()
        with pytest.raises(exceptions.InactiveResource):
            lifecycle.acceptBooking(session, booking.id, world.swift.actor)

    def test_company_cannot_accept(self, session, world, booking):
        with pytest.raises(exceptions.NoPermission):
            lifecycle.acceptBooking(session, booking.id, world.acme.actor)


class TestRejectBooking:
    def test_reject_associated_booking_reoffers_it(self, session, world, booking):
        rejected = lifecycle.rejectBooking(session, booking.id, world.swift.actor)
        assert rejected.status == BookingStatus.REJECTED
        assert rejected.vendor_id is None
        assert history(session, booking.id) == [BookingStatus.REJECTED]

        reoffer = session.query(Booking).filter(Booking.reoffer_of == booking.id).one()
        assert reoffer.status == BookingStatus.PENDING
        assert reoffer.visibility == BookingVisibility.OPEN_MARKET
        assert reoffer.visibility_changed_at is not None
        assert reoffer.booking_number != booking.booking_number
        assert reoffer.guest_name == booking.guest_name
        assert reoffer.pickup_location == booking.pickup_location
        assert history(session, reoffer.id) == []

    def test_reoffer_is_visible_to_unassociated_vendors(self, session, world, booking):
        lifecycle.rejectBooking(session, booking.id, world.swift.actor)
        offers = lifecycle.listBookings(session, world.rapid.actor, BookingFilter())
        assert [offer.reoffer_of for offer in offers] == [booking.id]

    def test_reject_records_the_vendor(self, session, world, booking):
        lifecycle.rejectBooking(session, booking.id, world.swift.actor)
        assert fetch(session, Booking, booking.id).rejected_by == world.swift.vendor.id
        reoffer = session.query(Booking).filter(Booking.reoffer_of == booking.id).one()
        assert reoffer.origin_id == booking.id
        assert reoffer.rejected_by is None

    def test_rejecting_vendor_does_not_see_reoffer(self, session, world, booking):
        lifecycle.rejectBooking(session, booking.id, world.swift.actor)
        swift = lifecycle.listBookings(session, world.swift.actor, BookingFilter())
        metro = lifecycle.listBookings(session, world.metro.actor, BookingFilter())
        assert swift == []
        assert [offer.reoffer_of for offer in metro] == [booking.id]

    def test_rejecting_vendor_cannot_accept_reoffer(self, session, world, booking):
        lifecycle.rejectBooking(session, booking.id, world.swift.actor)
        reoffer = session.query(Booking).filter(Booking.reoffer_of == booking.id).one()
        with pytest.raises(exceptions.InvalidIdentifier):
            lifecycle.acceptBooking(session, reoffer.id, world.swift.actor)
        with pytest.raises(exceptions.InvalidIdentifier):
            lifecycle.rejectBooking(session, reoffer.id, world.swift.actor)
        accepted = lifecycle.acceptBooking(session, reoffer.id, world.metro.actor)
        assert accepted.vendor_id == world.metro.vendor.id

    def test_reject_open_market_booking_reoffers_it(self, session, world, booking):
        lifecycle.openToMarket(session, booking.id, world.acme.actor)
        lifecycle.rejectBooking(session, booking.id, world.rapid.actor)

        reoffer = session.query(Booking).filter(Booking.reoffer_of == booking.id).one()
        assert reoffer.status == BookingStatus.PENDING
        assert reoffer.visibility == BookingVisibility.OPEN_MARKET
        for vendor in [world.swift, world.metro]:
            offers = lifecycle.listBookings(session, vendor.actor, BookingFilter())
            assert [offer.id for offer in offers] == [reoffer.id]
        assert lifecycle.listBookings(session, world.rapid.actor, BookingFilter()) == []

    def test_chain_excludes_every_rejecting_vendor(self, session, world, booking):
        lifecycle.rejectBooking(session, booking.id, world.swift.actor)
        first = session.query(Booking).filter(Booking.reoffer_of == booking.id).one()
        lifecycle.rejectBooking(session, first.id, world.metro.actor)
        second = session.query(Booking).filter(Booking.reoffer_of == first.id).one()

        assert second.origin_id == booking.id
        assert lifecycle.listBookings(session, world.swift.actor, BookingFilter()) == []
        assert lifecycle.listBookings(session, world.metro.actor, BookingFilter()) == []
        rapid = lifecycle.listBookings(session, world.rapid.actor, BookingFilter())
        assert [offer.id for offer in rapid] == [second.id]
        assert history(session, first.id) == [BookingStatus.REJECTED]

    def test_reject_accepted_booking_fails(self, session, world, accepted):
        with pytest.raises(exceptions.InvalidStateTransition):
            lifecycle.rejectBooking(session, accepted.id, world.metro.actor)

    def test_unassociated_vendor_cannot_reject(self, session, world, booking):
        with pytest.raises(exceptions.InvalidIdentifier):
            lifecycle.rejectBooking(session, booking.id, world.rapid.actor)
        assert fetch(session, Booking, booking.id).status == BookingStatus.PENDING


# ============================================================================
# FULFILMENT
# ============================================================================


class TestAssignDriverAndVehicle:
    def test_assign_own_resources(self, session, world, assigned):
        assert assigned.driver_id == world.swift.driver.id
        assert assigned.vehicle_id == world.swift.vehicle.id
        assert assigned.status == BookingStatus.ACCEPTED
        assert history(session, assigned.id) == [BookingStatus.ACCEPTED]

    def test_assignment_keeps_availability(self, session, world, assigned):
        assert fetch(session, Driver, world.swift.driver.id).is_available is True
        assert fetch(session, Vehicle, world.swift.vehicle.id).is_available is True

    def test_unavailable_driver(self, session, world, accepted):
        driver = session.get(Driver, world.swift.driver.id)
        driver.is_available = False
        session.commit()
        with pytest.raises(exceptions.ResourceUnavailable) as error:
            lifecycle.assignDriverAndVehicle(
                session,
                accepted.id,
                world.swift.actor,
                world.swift.driver.id,
                world.swift.vehicle.id,
            )
        assert "Driver" in error.value.detail
        assert fetch(session, Booking, accepted.id).driver_id is None

    def test_vehicle_of_another_vendor(self, session, world, accepted):
        with pytest.raises(exceptions.ResourceUnavailable) as error:
            lifecycle.assignDriverAndVehicle(
                session,
                accepted.id,
                world.swift.actor,
                world.swift.driver.id,
                world.metro.vehicle.id,
            )
        assert "Vehicle" in error.value.detail

    def test_unknown_driver(self, session, world, accepted):
        with pytest.raises(exceptions.UnknownValue) as error:
            lifecycle.assignDriverAndVehicle(
                session, accepted.id, world.swift.actor, 99999, world.swift.vehicle.id
            )
        assert error.value.status_code == 404
        assert "driver_id" in error.value.detail
        assert fetch(session, Booking, accepted.id).driver_id is None

    def test_unknown_vehicle(self, session, world, accepted):
        with pytest.raises(exceptions.UnknownValue) as error:
            lifecycle.assignDriverAndVehicle(
                session, accepted.id, world.swift.actor, world.swift.driver.id, 99999
            )
        assert "vehicle_id" in error.value.detail
        assert fetch(session, Booking, accepted.id).vehicle_id is None

    def test_retired_vehicle(self, session, world, accepted):
        vehicle = session.get(Vehicle, world.swift.vehicle.id)
        vehicle.is_active = False
        session.commit()
        with pytest.raises(exceptions.ResourceUnavailable):
            lifecycle.assignDriverAndVehicle(
                session,
                accepted.id,
                world.swift.actor,
                world.swift.driver.id,
                world.swift.vehicle.id,
            )

    def test_booking_held_by_another_vendor(self, session, world, accepted):
        with pytest.raises(exceptions.InvalidIdentifier):
            lifecycle.assignDriverAndVehicle(
                session,
                accepted.id,
                world.metro.actor,
                world.metro.driver.id,
                world.metro.vehicle.id,
            )

    def test_assign_after_completion_fails(self, session, world, completed):
        with pytest.raises(exceptions.InvalidStateTransition):
            lifecycle.assignDriverAndVehicle(
                session,
                completed.id,
                world.swift.actor,
                world.swift.driver.id,
                world.swift.vehicle.id,
            )


class TestTrip:
    def test_start_requires_driver(self, session, world, accepted):
        with pytest.raises(exceptions.PreconditionFailed) as error:
            lifecycle.startTrip(session, accepted.id, world.swift.actor)
        assert "driver_id" in error.value.detail
        assert fetch(session, Booking, accepted.id).status == BookingStatus.ACCEPTED
        assert history(session, accepted.id) == [BookingStatus.ACCEPTED]

    def test_start_sets_timestamp(self, session, world, ongoing):
        assert ongoing.status == BookingStatus.ONGOING
        assert ongoing.trip_started_at is not None

    def test_start_pending_booking_fails(self, session, world, booking):
        with pytest.raises(exceptions.InvalidIdentifier):
            lifecycle.startTrip(session, booking.id, world.swift.actor)

    def test_end_requires_ongoing(self, session, world, assigned):
        with pytest.raises(exceptions.InvalidStateTransition):
            lifecycle.endTrip(session, assigned.id, world.swift.actor)

    def test_end_rejects_negative_fare(self, session, world, ongoing):
        with pytest.raises(exceptions.InvalidValue):
            lifecycle.endTrip(session, ongoing.id, world.swift.actor, -10)

    def test_end_to_end(self, session, world, completed):
        assert completed.status == BookingStatus.COMPLETED
        assert completed.trip_ended_at is not None
        assert completed.actual_fare == 450
        assert completed.payment_status == PaymentStatus.PENDING
        assert history(session, completed.id) == [
            BookingStatus.ACCEPTED,
            BookingStatus.ONGOING,
            BookingStatus.COMPLETED,
        ]
        vendor = fetch(session, Vendor, world.swift.vendor.id)
        assert vendor.total_bookings == 1
        assert vendor.rating is None

    def test_history_is_oldest_first(self, session, world, completed):
        rows = lifecycle.bookingHistory(session, world.acme.actor, completed.id)
        assert [row.status for row in rows] == [
            BookingStatus.ACCEPTED,
            BookingStatus.ONGOING,
            BookingStatus.COMPLETED,
        ]


# ============================================================================
# CANCELLATION
# ============================================================================


class TestCancelBooking:
    def test_company_cancels_pending(self, session, world, booking):
        cancelled = lifecycle.cancelBooking(
            session, booking.id, world.acme.actor, "Meeting moved"
        )
        assert cancelled.status == BookingStatus.CANCELLED
        row = session.query(BookingHistory).one()
        assert row.status == BookingStatus.CANCELLED
        assert row.notes == "Meeting moved"

    def test_company_cancels_ongoing(self, session, world, ongoing):
        cancelled = lifecycle.cancelBooking(session, ongoing.id, world.acme.actor)
        assert cancelled.status == BookingStatus.CANCELLED
        assert history(session, ongoing.id)[-1] == BookingStatus.CANCELLED

    def test_vendor_cancels_held_booking(self, session, world, accepted):
        cancelled = lifecycle.cancelBooking(session, accepted.id, world.swift.actor)
        assert cancelled.status == BookingStatus.CANCELLED

    def test_vendor_cannot_cancel_unheld_booking(self, session, world, booking):
        with pytest.raises(exceptions.InvalidIdentifier):
            lifecycle.cancelBooking(session, booking.id, world.swift.actor)

    def test_other_company_cannot_cancel(self, session, world, booking):
        with pytest.raises(exceptions.InvalidIdentifier):
            lifecycle.cancelBooking(session, booking.id, world.globex.actor)

    def test_completed_booking_cannot_be_cancelled(self, session, world, completed):
        with pytest.raises(exceptions.InvalidStateTransition):
            lifecycle.cancelBooking(session, completed.id, world.acme.actor)
        assert len(history(session, completed.id)) == 3

    def test_cancel_twice_fails(self, session, world, booking):
        lifecycle.cancelBooking(session, booking.id, world.acme.actor)
        with pytest.raises(exceptions.InvalidStateTransition):
            lifecycle.cancelBooking(session, booking.id, world.acme.actor)
        assert history(session, booking.id) == [BookingStatus.CANCELLED]

    def test_rejected_booking_cannot_be_cancelled(self, session, world, booking):
        lifecycle.rejectBooking(session, booking.id, world.swift.actor)
        with pytest.raises(exceptions.InvalidStateTransition):
            lifecycle.cancelBooking(session, booking.id, world.acme.actor)
        assert fetch(session, Booking, booking.id).status == BookingStatus.REJECTED
        assert history(session, booking.id) == [BookingStatus.REJECTED]


# ============================================================================
# LISTING AND VISIBILITY
# ============================================================================


class TestListBookings:
    def test_vendor_sees_associated_pending(self, session, world, booking):
        offers = lifecycle.listBookings(session, world.swift.actor, BookingFilter())
        assert [offer.id for offer in offers] == [booking.id]

    def test_unassociated_vendor_sees_nothing(self, session, world, booking):
        assert lifecycle.listBookings(session, world.rapid.actor, BookingFilter()) == []

    def test_open_market_is_visible_to_all(self, session, world, booking):
        lifecycle.openToMarket(session, booking.id, world.acme.actor)
        offers = lifecycle.listBookings(session, world.rapid.actor, BookingFilter())
        assert [offer.id for offer in offers] == [booking.id]

    def test_accepted_booking_leaves_offers(self, session, world, accepted):
        assert lifecycle.listBookings(session, world.metro.actor, BookingFilter()) == []
        held = lifecycle.listBookings(
            session, world.swift.actor, BookingFilter(history=True)
        )
        assert [item.id for item in held] == [accepted.id]

    def test_company_sees_only_its_own(self, session, world, booking, booking_input):
        other = lifecycle.createBooking(session, world.globex.actor, booking_input)
        mine = lifecycle.listBookings(session, world.acme.actor, BookingFilter())
        theirs = lifecycle.listBookings(session, world.globex.actor, BookingFilter())
        assert [item.id for item in mine] == [booking.id]
        assert [item.id for item in theirs] == [other.id]

    def test_newest_first(self, session, world, booking_input):
        ids = [
            lifecycle.createBooking(session, world.acme.actor, booking_input).id
            for _ in range(3)
        ]
        listed = lifecycle.listBookings(session, world.acme.actor, BookingFilter())
        assert [item.id for item in listed] == list(reversed(ids))

    def test_filters_and_pagination(self, session, world, booking_input):
        first = lifecycle.createBooking(session, world.acme.actor, booking_input)
        second = lifecycle.createBooking(
            session,
            world.acme.actor,
            booking_input.model_copy(update={"guest_name": "Anjali Nair"}),
        )
        lifecycle.cancelBooking(session, first.id, world.acme.actor)

        byStatus = lifecycle.listBookings(
            session, world.acme.actor, BookingFilter(status=BookingStatus.CANCELLED)
        )
        assert [item.id for item in byStatus] == [first.id]

        bySearch = lifecycle.listBookings(
            session, world.acme.actor, BookingFilter(search="anjali")
        )
        assert [item.id for item in bySearch] == [second.id]

        paged = lifecycle.listBookings(
            session, world.acme.actor, BookingFilter(offset=1, limit=1)
        )
        assert [item.id for item in paged] == [first.id]


class TestVisibility:
    def test_open_to_market(self, session, world, booking):
        opened = lifecycle.openToMarket(session, booking.id, world.acme.actor)
        assert opened.visibility == BookingVisibility.OPEN_MARKET
        assert opened.visibility_changed_at is not None
        assert opened.status == BookingStatus.PENDING
        assert history(session, booking.id) == []

    def test_open_twice_fails(self, session, world, booking):
        lifecycle.openToMarket(session, booking.id, world.acme.actor)
        with pytest.raises(exceptions.InvalidStateTransition):
            lifecycle.openToMarket(session, booking.id, world.acme.actor)

    def test_open_accepted_fails(self, session, world, accepted):
        with pytest.raises(exceptions.InvalidStateTransition):
            lifecycle.openToMarket(session, accepted.id, world.acme.actor)

    def test_promote_stale_bookings(self, session, world, booking, accepted_other):
        cutoff = datetime.now(timezone.utc) + timedelta(seconds=1)
        promoted = lifecycle.promoteStaleBookings(session, cutoff)
        assert promoted == [booking.id]
        stored = fetch(session, Booking, booking.id)
        assert stored.visibility == BookingVisibility.OPEN_MARKET
        assert stored.visibility_changed_at is not None
        assert history(session, booking.id) == []

    def test_fresh_bookings_are_not_promoted(self, session, world, booking):
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=30)
        assert lifecycle.promoteStaleBookings(session, cutoff) == []
        assert fetch(session, Booking, booking.id).visibility == (
            BookingVisibility.ASSOCIATED
        )


@pytest.fixture
def accepted_other(session, world, booking_input):
    other = lifecycle.createBooking(session, world.acme.actor, booking_input)
    return lifecycle.acceptBooking(session, other.id, world.metro.actor)


# ============================================================================
# POST TRIP
# ============================================================================


class TestReviewBooking:
    def test_review_updates_vendor_rating(self, session, world, completed):
        reviewed = lifecycle.reviewBooking(
            session, completed.id, world.acme.actor, 4, "Punctual"
        )
        assert reviewed.rating == 4
        assert reviewed.feedback == "Punctual"
        vendor = fetch(session, Vendor, world.swift.vendor.id)
        assert vendor.rating == 4
        assert len(history(session, completed.id)) == 3

    def test_review_only_once(self, session, world, completed):
        lifecycle.reviewBooking(session, completed.id, world.acme.actor, 5)
        with pytest.raises(exceptions.InvalidStateTransition):
            lifecycle.reviewBooking(session, completed.id, world.acme.actor, 1)

    def test_rating_out_of_range(self, session, world, completed):
        with pytest.raises(exceptions.InvalidValue):
            lifecycle.reviewBooking(session, completed.id, world.acme.actor, 6)

    def test_review_requires_completion(self, session, world, ongoing):
        with pytest.raises(exceptions.InvalidStateTransition):
            lifecycle.reviewBooking(session, ongoing.id, world.acme.actor, 3)

    def test_mean_rating(self, session, world, completed, booking_input):
        lifecycle.reviewBooking(session, completed.id, world.acme.actor, 5)

        second = lifecycle.createBooking(session, world.acme.actor, booking_input)
        lifecycle.acceptBooking(session, second.id, world.swift.actor)
        lifecycle.assignDriverAndVehicle(
            session,
            second.id,
            world.swift.actor,
            world.swift.driver.id,
            world.swift.vehicle.id,
        )
        lifecycle.startTrip(session, second.id, world.swift.actor)
        lifecycle.endTrip(session, second.id, world.swift.actor)
        lifecycle.reviewBooking(session, second.id, world.acme.actor, 4)

        vendor = fetch(session, Vendor, world.swift.vendor.id)
        assert vendor.total_bookings == 2
        assert float(vendor.rating) == pytest.approx(4.5)


class TestBookingHistory:
    def test_other_company_cannot_read(self, session, world, accepted):
        with pytest.raises(exceptions.InvalidIdentifier):
            lifecycle.bookingHistory(session, world.globex.actor, accepted.id)

    def test_holding_vendor_can_read(self, session, world, accepted):
        rows = lifecycle.bookingHistory(session, world.swift.actor, accepted.id)
        assert [row.status for row in rows] == [BookingStatus.ACCEPTED]

    def test_other_vendor_cannot_read(self, session, world, accepted):
        with pytest.raises(exceptions.InvalidIdentifier):
            lifecycle.bookingHistory(session, world.metro.actor, accepted.id)
