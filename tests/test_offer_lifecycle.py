from datetime import date

import pytest

from models import (
    db, Offer, Lease, Payment, Property, RentalRequest, Conversation,
    OfferStatus, LeaseStatus, PropertyStatus, PaymentStatus, PoolStatus, RequestStatus,
    ConversationStatus,
)
from services import lifecycle
from services.errors import InvariantViolation, InvalidTransition, ValidationError


def test_create_offer_locks_request_and_opens_conversation(make_offer, listing, users):
    offer = make_offer()

    request = db.session.get(RentalRequest, listing.request.id)
    assert offer.status == OfferStatus.PENDING
    assert request.is_locked is True
    assert request.pool_status == PoolStatus.MATCHED
    assert request.status == RequestStatus.PENDING

    conversation = Conversation.query.filter_by(offer_id=offer.id).one()
    assert conversation.status == ConversationStatus.ACTIVE
    assert {p.user_id for p in conversation.participants} == {users.tenant.id, users.landlord.id}


def test_second_offer_refused_while_request_locked(make_offer, users, listing):
    make_offer()
    other = Property(landlord_id=users.landlord.id, name='Flat 5C', monthly_rent=900.0)
    db.session.add(other)
    db.session.commit()

    with pytest.raises(InvariantViolation):
        lifecycle.create_offer(listing.request.id, other.id, users.landlord.id,
                               lease_start_date=date(2025, 10, 1), rent_amount=900.0)
    assert Offer.query.count() == 1


def test_offer_on_someone_elses_property_is_rejected(listing, users):
    with pytest.raises(ValidationError):
        lifecycle.create_offer(listing.request.id, listing.property.id, users.tenant.id,
                               lease_start_date=date(2025, 10, 1), rent_amount=1000.0)
    assert db.session.get(RentalRequest, listing.request.id).is_locked is False


def test_paying_accepted_offer_materializes_lease(make_offer, listing):
    offer = make_offer()
    lifecycle.accept_offer(offer.id)
    lease = lifecycle.mark_offer_paid(offer.id, gateway='stripe', gateway_reference='pi_123')

    offer = db.session.get(Offer, offer.id)
    assert offer.status == OfferStatus.PAID
    assert offer.is_paid is True
    assert offer.payment_date is not None

    assert lease.status == LeaseStatus.ACTIVE
    assert lease.start_date == date(2025, 10, 1)
    assert lease.end_date == date(2026, 10, 1)

    payment = Payment.query.filter_by(offer_id=offer.id).one()
    assert payment.status == PaymentStatus.COMPLETED
    assert payment.gateway == 'STRIPE'
    assert payment.amount == 2400.0

    prop = db.session.get(Property, listing.property.id)
    assert prop.status == PropertyStatus.RENTED
    assert prop.availability is False
    assert db.session.get(RentalRequest, listing.request.id).status == RequestStatus.PAID


def test_pending_offer_cannot_be_paid(make_offer):
    offer = make_offer()
    with pytest.raises(InvalidTransition):
        lifecycle.mark_offer_paid(offer.id, gateway='PAYU')
    assert Lease.query.count() == 0
    assert db.session.get(Offer, offer.id).status == OfferStatus.PENDING


def test_cancel_pending_offer_returns_request_to_pool(make_offer, listing, users):
    offer = make_offer()
    lifecycle.cancel_offer(offer.id, status=OfferStatus.CANCELLED, actor_id=users.landlord.id, reason='Unit sold')

    request = db.session.get(RentalRequest, listing.request.id)
    assert db.session.get(Offer, offer.id).status == OfferStatus.CANCELLED
    assert request.is_locked is False
    assert request.pool_status == PoolStatus.ACTIVE
    assert request.status == RequestStatus.ACTIVE
    assert Conversation.query.filter_by(offer_id=offer.id).one().status == ConversationStatus.ARCHIVED


def test_paid_offer_cannot_take_pre_lease_cancellation(make_paid_lease):
    lease = make_paid_lease()
    with pytest.raises(InvalidTransition):
        lifecycle.cancel_offer(lease.offer_id)
    assert db.session.get(Offer, lease.offer_id).status == OfferStatus.PAID


def test_rejected_offer_never_reenters_pending(make_offer):
    offer = make_offer()
    lifecycle.cancel_offer(offer.id)

    offer = db.session.get(Offer, offer.id)
    with pytest.raises(InvalidTransition):
        lifecycle.accept_offer(offer.id)
    with pytest.raises(InvalidTransition):
        lifecycle.transition_offer(offer, OfferStatus.PENDING, None)


@pytest.mark.parametrize('current,target,allowed', [
    (OfferStatus.PENDING, OfferStatus.ACCEPTED, True),
    (OfferStatus.PENDING, OfferStatus.PAID, False),
    (OfferStatus.ACCEPTED, OfferStatus.PAID, True),
    (OfferStatus.PAID, OfferStatus.REJECTED, True),
    (OfferStatus.PAID, OfferStatus.PENDING, False),
    (OfferStatus.CANCELLED, OfferStatus.PENDING, False),
    (OfferStatus.REJECTED, OfferStatus.ACCEPTED, False),
])
def test_offer_transition_table(current, target, allowed):
    assert lifecycle.can_transition_offer(current, target) is allowed


def test_lock_flag_tracks_in_flight_offers(make_offer, listing, users, approve_issue):
    assert lifecycle.find_lock_violations() == []

    offer = make_offer()
    assert lifecycle.find_lock_violations() == []

    lifecycle.accept_offer(offer.id)
    lease = lifecycle.mark_offer_paid(offer.id, gateway='PAYU')
    assert lifecycle.find_lock_violations() == []
    assert db.session.get(RentalRequest, listing.request.id).is_locked is True

    approve_issue(lease)
    lifecycle.apply_termination_cascade(lease.id)
    assert lifecycle.find_lock_violations() == []
    assert db.session.get(RentalRequest, listing.request.id).is_locked is False


def test_lock_violation_is_reported(listing):
    request = db.session.get(RentalRequest, listing.request.id)
    request.is_locked = True
    db.session.commit()

    violations = lifecycle.find_lock_violations()
    assert violations == [{'rental_request_id': request.id, 'is_locked': True, 'in_flight_offers': []}]
