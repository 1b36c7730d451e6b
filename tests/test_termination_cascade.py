import pytest
from sqlalchemy.exc import SQLAlchemyError

from models import (
    db, Lease, Offer, Property, RentalRequest, Conversation, MoveInIssue, AuditLog,
    AdminDecision, LeaseStatus, OfferStatus, PropertyStatus, PoolStatus, RequestStatus,
    ConversationStatus, IssueStatus,
)
from services import lifecycle
from services.errors import InvariantViolation, NotFound, TransactionFailure


def test_approved_issue_terminates_lease_end_to_end(make_paid_lease, approve_issue, listing):
    lease = make_paid_lease()
    offer_id, property_id = lease.offer_id, lease.property_id
    issue = approve_issue(lease, AdminDecision.APPROVE)

    result = lifecycle.apply_termination_cascade(lease.id)

    assert result['applied'] is True
    assert result['issue_id'] == issue.id
    assert result['archived_conversations'] == 1

    lease = db.session.get(Lease, lease.id)
    offer = db.session.get(Offer, offer_id)
    prop = db.session.get(Property, property_id)
    request = db.session.get(RentalRequest, listing.request.id)

    assert lease.status == LeaseStatus.TERMINATED
    assert lease.terminated_at is not None
    assert offer.status == OfferStatus.REJECTED
    assert offer.is_paid is False
    assert offer.payment_date is None
    assert prop.status == PropertyStatus.AVAILABLE
    assert prop.availability is True
    assert request.is_locked is False
    assert request.pool_status == PoolStatus.CANCELLED
    assert request.status == RequestStatus.CANCELLED
    assert all(c.status == ConversationStatus.ARCHIVED
               for c in Conversation.query.filter_by(offer_id=offer_id).all())
    assert db.session.get(MoveInIssue, issue.id).status == IssueStatus.RESOLVED
    assert AuditLog.query.filter_by(action='TERMINATE', target_id=lease.id).count() == 1


def test_accepted_decision_also_triggers_cascade(make_paid_lease, approve_issue):
    lease = make_paid_lease()
    approve_issue(lease, AdminDecision.ACCEPTED)

    assert lifecycle.apply_termination_cascade(lease.id)['applied'] is True
    assert db.session.get(Lease, lease.id).status == LeaseStatus.TERMINATED


def test_rejected_issue_is_a_noop(make_paid_lease, approve_issue):
    lease = make_paid_lease()
    approve_issue(lease, AdminDecision.REJECT)

    result = lifecycle.apply_termination_cascade(lease.id)

    assert result['applied'] is False
    assert 'No approved move-in issue' in result['message']
    assert db.session.get(Lease, lease.id).status == LeaseStatus.ACTIVE


def test_second_run_is_a_noop(make_paid_lease, approve_issue):
    lease = make_paid_lease()
    approve_issue(lease)

    first = lifecycle.apply_termination_cascade(lease.id)
    second = lifecycle.apply_termination_cascade(lease.id)

    assert first['applied'] is True
    assert second['applied'] is False
    assert AuditLog.query.filter_by(action='TERMINATE').count() == 1


def test_failing_property_step_rolls_everything_back(make_paid_lease, approve_issue, listing, monkeypatch):
    lease = make_paid_lease()
    lease_id, offer_id = lease.id, lease.offer_id
    issue = approve_issue(lease)

    def broken_release(prop, now):
        raise SQLAlchemyError('property update failed')

    monkeypatch.setattr(lifecycle, '_release_property', broken_release)

    with pytest.raises(TransactionFailure) as exc_info:
        lifecycle.apply_termination_cascade(lease_id)
    assert exc_info.value.lease_id == lease_id
    assert isinstance(exc_info.value.__cause__, SQLAlchemyError)

    lease = db.session.get(Lease, lease_id)
    offer = db.session.get(Offer, offer_id)
    request = db.session.get(RentalRequest, listing.request.id)
    assert lease.status == LeaseStatus.ACTIVE
    assert offer.status == OfferStatus.PAID
    assert offer.is_paid is True
    assert request.is_locked is True
    assert request.status == RequestStatus.PAID
    assert db.session.get(Property, lease.property_id).status == PropertyStatus.RENTED
    assert db.session.get(MoveInIssue, issue.id).status == IssueStatus.OPEN
    assert Conversation.query.filter_by(offer_id=offer_id).one().status == ConversationStatus.ACTIVE


def test_dangling_property_aborts_before_any_write(make_paid_lease, approve_issue):
    lease = make_paid_lease()
    offer_id = lease.offer_id
    approve_issue(lease)
    lease.property_id = 9999
    db.session.commit()

    with pytest.raises(InvariantViolation):
        lifecycle.apply_termination_cascade(lease.id)

    assert db.session.get(Lease, lease.id).status == LeaseStatus.ACTIVE
    assert db.session.get(Offer, offer_id).status == OfferStatus.PAID


def test_lease_without_offer_is_an_invariant_violation(make_paid_lease, approve_issue):
    lease = make_paid_lease()
    approve_issue(lease)
    lease.offer_id = None
    db.session.commit()

    with pytest.raises(InvariantViolation):
        lifecycle.apply_termination_cascade(lease.id)
    assert db.session.get(Lease, lease.id).status == LeaseStatus.ACTIVE


def test_unknown_lease_raises_not_found(app):
    with pytest.raises(NotFound):
        lifecycle.apply_termination_cascade(424242)


def test_latest_approved_issue_without_lease_aborts(users):
    issue = MoveInIssue(title='Orphaned', admin_decision=AdminDecision.APPROVE, reporter_id=users.tenant.id)
    db.session.add(issue)
    db.session.commit()

    with pytest.raises(InvariantViolation):
        lifecycle.apply_latest_approved_issue()


def test_latest_approved_issue_applies_cascade(make_paid_lease, approve_issue):
    lease = make_paid_lease()
    approve_issue(lease)

    result = lifecycle.apply_latest_approved_issue()

    assert result['cascade']['applied'] is True
    assert lifecycle.apply_latest_approved_issue() is None


def test_property_consistency_check_after_termination(make_paid_lease, approve_issue):
    lease = make_paid_lease()
    assert lifecycle.find_property_status_violations() == []

    approve_issue(lease)
    lifecycle.apply_termination_cascade(lease.id)
    assert lifecycle.find_property_status_violations() == []


def test_property_consistency_check_flags_and_fixes_drift(make_paid_lease):
    lease = make_paid_lease()
    prop = db.session.get(Property, lease.property_id)
    prop.status = PropertyStatus.AVAILABLE
    db.session.commit()

    assert lifecycle.find_property_status_violations() == [prop]

    lifecycle.sync_property_status(prop)
    db.session.commit()
    assert prop.status == PropertyStatus.RENTED
    assert prop.availability is False
    assert lifecycle.find_property_status_violations() == []
