"""
Lease / offer / payment lifecycle.

Every multi-entity status change goes through this module so that Lease,
Offer, RentalRequest, Property, Conversation and Payment rows move together.

Cascades are all-or-nothing: writes happen on db.session and are committed
once at the end; any SQLAlchemy error rolls the whole session back and is
re-raised as TransactionFailure. Refunds are the exception: each payment is
refunded and committed on its own so a batch can partially succeed.
"""
import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import (
    db, RentalRequest, Offer, Lease, Property, Payment, Conversation,
    ConversationParticipant, MoveInIssue,
    PoolStatus, RequestStatus, OfferStatus, LeaseStatus, PropertyStatus,
    PaymentStatus, PaymentPurpose, ConversationStatus, ParticipantRole,
    IssueStatus, AdminDecision,
)
from services.clock import get_clock
from services.errors import (
    NotFound, ValidationError, InvariantViolation, InvalidTransition,
    TransactionFailure,
)
from services.refunds import get_refund_provider, LIVE_REFUND_GATEWAYS
from utils import add_months, log_audit, notify

logger = logging.getLogger(__name__)

# APPROVE and ACCEPTED stay distinct values; both trigger termination.
APPROVE_DECISIONS = (AdminDecision.APPROVE, AdminDecision.ACCEPTED)

IN_FLIGHT_OFFER_STATUSES = (OfferStatus.PENDING, OfferStatus.ACCEPTED, OfferStatus.PAID)

OFFER_TRANSITIONS = {
    OfferStatus.PENDING: {OfferStatus.ACCEPTED, OfferStatus.REJECTED, OfferStatus.CANCELLED},
    OfferStatus.ACCEPTED: {OfferStatus.PAID, OfferStatus.REJECTED, OfferStatus.CANCELLED},
    OfferStatus.PAID: {OfferStatus.REJECTED, OfferStatus.CANCELLED},
    OfferStatus.REJECTED: set(),
    OfferStatus.CANCELLED: set(),
}

LEASE_TRANSITIONS = {
    LeaseStatus.ACTIVE: {LeaseStatus.TERMINATED, LeaseStatus.RENEWED},
    LeaseStatus.TERMINATED: set(),
    LeaseStatus.RENEWED: set(),
}


def can_transition_offer(current, target):
    return target in OFFER_TRANSITIONS[current]


def transition_offer(offer, target, now):
    if not can_transition_offer(offer.status, target):
        raise InvalidTransition('Offer', offer.status, target)
    offer.status = target
    offer.updated_at = now


def transition_lease(lease, target, now):
    if target not in LEASE_TRANSITIONS[lease.status]:
        raise InvalidTransition('Lease', lease.status, target)
    lease.status = target
    lease.updated_at = now


def _get(model, id):
    obj = db.session.get(model, id) if id is not None else None
    if obj is None:
        raise NotFound(f"{model.__name__} {id} not found")
    return obj


def _commit_or_fail(action, lease_id=None, offer_id=None):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("%s rolled back (lease=%s offer=%s)", action, lease_id, offer_id)
        raise TransactionFailure(f"{action} failed: {e}", lease_id=lease_id, offer_id=offer_id) from e


# --- Offer flow -------------------------------------------------------------

def create_offer(rental_request_id, property_id, landlord_id, lease_start_date, rent_amount,
                 lease_duration_months=12, deposit_amount=0.0, clock=None):
    clock = clock or get_clock()
    now = clock.now()
    rental_request = _get(RentalRequest, rental_request_id)
    prop = _get(Property, property_id)

    if prop.landlord_id != landlord_id:
        raise ValidationError(f"Property {prop.id} does not belong to landlord {landlord_id}")
    if lease_duration_months < 1:
        raise ValidationError("Lease duration must be at least one month")
    if rental_request.pool_status != PoolStatus.ACTIVE:
        raise InvariantViolation(f"Rental request {rental_request.id} is not in the pool")
    if prop.status != PropertyStatus.AVAILABLE or not prop.availability:
        raise InvariantViolation(f"Property {prop.id} is not available")

    try:
        # Compare-and-set so two landlords cannot lock the same request
        locked = RentalRequest.query.filter_by(id=rental_request.id, is_locked=False).update(
            {'is_locked': True}, synchronize_session='fetch')
        if not locked:
            db.session.rollback()
            raise InvariantViolation(f"Rental request {rental_request.id} already has an offer in flight")

        offer = Offer(
            rental_request_id=rental_request.id,
            property_id=prop.id,
            landlord_id=landlord_id,
            tenant_id=rental_request.tenant_id,
            status=OfferStatus.PENDING,
            lease_start_date=lease_start_date,
            lease_duration_months=lease_duration_months,
            rent_amount=rent_amount,
            deposit_amount=deposit_amount or 0.0,
            created_at=now,
            updated_at=now
        )
        db.session.add(offer)

        rental_request.pool_status = PoolStatus.MATCHED
        rental_request.status = RequestStatus.PENDING
        rental_request.updated_at = now

        conversation = Conversation(property_id=prop.id, offer=offer, status=ConversationStatus.ACTIVE)
        conversation.participants.append(
            ConversationParticipant(user_id=rental_request.tenant_id, role=ParticipantRole.TENANT))
        conversation.participants.append(
            ConversationParticipant(user_id=landlord_id, role=ParticipantRole.LANDLORD))
        db.session.add(conversation)
        db.session.flush()

        notify(rental_request.tenant_id, 'New offer received',
               f'You have a new offer for {prop.name}.', entity_id=offer.id)
        log_audit('CREATE', 'Offer', offer.id, f"Offer for request {rental_request.id}",
                  user_id=landlord_id, commit=False)
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Offer creation for request %s rolled back", rental_request_id)
        raise TransactionFailure(f"Offer creation failed: {e}") from e

    _commit_or_fail('Offer creation')
    logger.info("Offer %s created against request %s", offer.id, rental_request_id)
    return offer


def accept_offer(offer_id, actor_id=None, clock=None):
    clock = clock or get_clock()
    now = clock.now()
    offer = _get(Offer, offer_id)

    transition_offer(offer, OfferStatus.ACCEPTED, now)
    offer.rental_request.status = RequestStatus.ACCEPTED
    offer.rental_request.updated_at = now
    notify(offer.landlord_id, 'Offer accepted',
           f'Your offer #{offer.id} was accepted and awaits payment.', entity_id=offer.id)
    log_audit('ACCEPT', 'Offer', offer.id, user_id=actor_id, commit=False)

    _commit_or_fail('Offer acceptance', offer_id=offer_id)
    return offer


def mark_offer_paid(offer_id, gateway, gateway_reference=None, amount=None,
                    purpose=PaymentPurpose.DEPOSIT_AND_FIRST_MONTH, payer_id=None, clock=None):
    """
    ACCEPTED -> PAID. Records the completed payment and materializes the lease.
    PAID is the only state a lease is created from.
    """
    clock = clock or get_clock()
    now = clock.now()
    offer = _get(Offer, offer_id)
    prop = offer.property

    if not can_transition_offer(offer.status, OfferStatus.PAID):
        raise InvalidTransition('Offer', offer.status, OfferStatus.PAID)
    if prop.active_lease is not None:
        raise InvariantViolation(f"Property {prop.id} already has active lease {prop.active_lease.id}")

    try:
        transition_offer(offer, OfferStatus.PAID, now)
        offer.is_paid = True
        offer.payment_date = now

        if amount is None:
            amount = (offer.rent_amount or 0.0) + (offer.deposit_amount or 0.0)
        payment = Payment(
            offer_id=offer.id,
            user_id=payer_id or offer.tenant_id,
            amount=amount,
            status=PaymentStatus.COMPLETED,
            purpose=purpose,
            gateway=(gateway or '').upper() or None,
            gateway_reference=gateway_reference,
            created_at=now
        )
        db.session.add(payment)

        lease = Lease(
            offer_id=offer.id,
            property_id=prop.id,
            tenant_id=offer.tenant_id,
            status=LeaseStatus.ACTIVE,
            start_date=offer.lease_start_date,
            end_date=add_months(offer.lease_start_date, offer.lease_duration_months),
            rent_amount=offer.rent_amount,
            updated_at=now
        )
        db.session.add(lease)

        prop.status = PropertyStatus.RENTED
        prop.availability = False
        prop.updated_at = now

        offer.rental_request.status = RequestStatus.PAID
        offer.rental_request.updated_at = now

        for conversation in offer.conversations:
            conversation.status = ConversationStatus.ACTIVE

        db.session.flush()
        notify(offer.landlord_id, 'Payment received',
               f'Offer #{offer.id} has been paid. Lease #{lease.id} is active.', entity_id=lease.id)
        notify(offer.tenant_id, 'Lease confirmed',
               f'Your lease for {prop.name} starts on {lease.start_date.isoformat()}.', entity_id=lease.id)
        log_audit('PAY', 'Offer', offer.id, f"Payment {payment.id} via {payment.gateway}, lease {lease.id}",
                  user_id=payer_id, commit=False)
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Payment of offer %s rolled back", offer_id)
        raise TransactionFailure(f"Offer payment failed: {e}", offer_id=offer_id) from e

    _commit_or_fail('Offer payment', offer_id=offer_id)
    logger.info("Offer %s paid, lease %s created", offer.id, lease.id)
    return lease


def cancel_offer(offer_id, status=OfferStatus.REJECTED, actor_id=None, reason=None, clock=None):
    """
    Pre-lease offer-rejection cascade. The request goes back to the pool
    unlocked and the offer's conversations are archived.
    """
    clock = clock or get_clock()
    now = clock.now()
    if status not in (OfferStatus.REJECTED, OfferStatus.CANCELLED):
        raise ValidationError(f"Cannot cancel an offer into {status.value}")
    offer = _get(Offer, offer_id)

    # A paid offer only leaves PAID through the termination cascade
    if offer.status == OfferStatus.PAID or not can_transition_offer(offer.status, status):
        raise InvalidTransition('Offer', offer.status, status)

    try:
        transition_offer(offer, status, now)

        rental_request = offer.rental_request
        rental_request.is_locked = False
        rental_request.pool_status = PoolStatus.ACTIVE
        rental_request.status = RequestStatus.ACTIVE
        rental_request.updated_at = now

        archived = _archive_conversations(offer.id)

        body = f'Offer #{offer.id} was {status.value.lower()}.'
        if reason:
            body += f' Reason: {reason}'
        for user_id in (offer.tenant_id, offer.landlord_id):
            if user_id != actor_id:
                notify(user_id, 'Offer withdrawn', body, entity_id=offer.id)
        log_audit(status.value, 'Offer', offer.id, f"Archived {archived} conversations. {reason or ''}".strip(),
                  user_id=actor_id, commit=False)
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Cancellation of offer %s rolled back", offer_id)
        raise TransactionFailure(f"Offer cancellation failed: {e}", offer_id=offer_id) from e

    _commit_or_fail('Offer cancellation', offer_id=offer_id)
    return offer


# --- Termination cascade ----------------------------------------------------

def find_approved_issue(lease_id):
    """Latest approve-equivalent issue on a lease that is not yet terminated."""
    return (MoveInIssue.query
            .join(Lease, MoveInIssue.lease_id == Lease.id)
            .filter(MoveInIssue.lease_id == lease_id,
                    MoveInIssue.admin_decision.in_(APPROVE_DECISIONS),
                    Lease.status != LeaseStatus.TERMINATED)
            .order_by(MoveInIssue.admin_decision_at.desc(), MoveInIssue.id.desc())
            .first())


def _check_cascade_preconditions(lease):
    if lease.offer is None:
        raise InvariantViolation(f"Lease {lease.id} has no linked offer")
    if lease.property is None:
        raise InvariantViolation(f"Lease {lease.id} has no linked property")
    if lease.status != LeaseStatus.ACTIVE:
        raise InvalidTransition('Lease', lease.status, LeaseStatus.TERMINATED)
    if lease.offer.status != OfferStatus.PAID:
        raise InvariantViolation(f"Lease {lease.id} exists but offer {lease.offer.id} is {lease.offer.status.value}")
    return lease.offer


def _terminate_lease(lease, now):
    transition_lease(lease, LeaseStatus.TERMINATED, now)
    lease.terminated_at = now


def _reject_offer(offer, now):
    transition_offer(offer, OfferStatus.REJECTED, now)
    offer.is_paid = False
    offer.payment_date = None


def _cancel_rental_request(offer, now):
    rental_request = RentalRequest.query.filter(RentalRequest.offers.any(Offer.id == offer.id)).first()
    if rental_request is None:
        return None
    rental_request.is_locked = False
    rental_request.pool_status = PoolStatus.CANCELLED
    rental_request.status = RequestStatus.CANCELLED
    rental_request.updated_at = now
    return rental_request.id


def _release_property(prop, now):
    prop.status = PropertyStatus.AVAILABLE
    prop.availability = True
    prop.updated_at = now


def _archive_conversations(offer_id):
    conversations = Conversation.query.filter_by(offer_id=offer_id).all()
    for conversation in conversations:
        conversation.status = ConversationStatus.ARCHIVED
    return len(conversations)


def _run_termination_cascade(lease, issue, clock, actor_id=None):
    offer = _check_cascade_preconditions(lease)
    now = clock.now()
    lease_id, offer_id, property_id = lease.id, offer.id, lease.property_id

    try:
        _terminate_lease(lease, now)
        _reject_offer(offer, now)
        rental_request_id = _cancel_rental_request(offer, now)
        _release_property(lease.property, now)
        archived = _archive_conversations(offer_id)

        issue.status = IssueStatus.RESOLVED
        for user_id in (offer.tenant_id, offer.landlord_id):
            notify(user_id, 'Lease terminated',
                   f'Lease #{lease_id} was terminated after move-in issue #{issue.id} was approved.',
                   entity_id=lease_id)
        log_audit('TERMINATE', 'Lease', lease_id,
                  f"Issue {issue.id} ({issue.admin_decision.value}); offer {offer_id} rejected; "
                  f"property {property_id} released; {archived} conversations archived",
                  user_id=actor_id, commit=False)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Termination cascade for lease %s rolled back", lease_id)
        raise TransactionFailure(f"Termination cascade for lease {lease_id} failed: {e}",
                                 lease_id=lease_id, offer_id=offer_id) from e

    logger.info("Lease %s terminated via issue %s", lease_id, issue.id)
    return {
        'applied': True,
        'lease_id': lease_id,
        'offer_id': offer_id,
        'rental_request_id': rental_request_id,
        'property_id': property_id,
        'issue_id': issue.id,
        'archived_conversations': archived,
        'message': f'Lease {lease_id} terminated',
    }


def _noop(lease_id, message):
    logger.info(message)
    return {'applied': False, 'lease_id': lease_id, 'issue_id': None, 'message': message}


def apply_termination_cascade(lease_id, clock=None, actor_id=None):
    """
    Terminate a lease whose move-in issue was approved by an admin.

    Returns a summary dict. When no approved, non-terminated issue matches
    the call is a no-op and 'applied' is False.
    """
    clock = clock or get_clock()
    lease = _get(Lease, lease_id)
    issue = find_approved_issue(lease.id)
    if issue is None:
        return _noop(lease.id, f"No approved move-in issue pending for lease {lease.id}")
    return _run_termination_cascade(lease, issue, clock, actor_id)


def terminate_with_refunds(lease_id, clock=None, actor_id=None, context=None):
    """Refund the offer's payments first, then run the termination cascade."""
    clock = clock or get_clock()
    lease = _get(Lease, lease_id)
    issue = find_approved_issue(lease.id)
    if issue is None:
        return {'cascade': _noop(lease.id, f"No approved move-in issue pending for lease {lease.id}"),
                'refunds': []}

    offer = _check_cascade_preconditions(lease)
    refunds = refund_offer_payments(offer.id, context=context, clock=clock, actor_id=actor_id)

    # Refund commits expire loaded instances; reload before the cascade
    lease = _get(Lease, lease_id)
    issue = _get(MoveInIssue, issue.id)
    cascade = _run_termination_cascade(lease, issue, clock, actor_id)
    return {'cascade': cascade, 'refunds': refunds}


def apply_latest_approved_issue(clock=None, context=None):
    """Pick the most recently approved issue whose lease is still live and terminate it."""
    issue = (MoveInIssue.query
             .outerjoin(Lease, MoveInIssue.lease_id == Lease.id)
             .filter(MoveInIssue.admin_decision.in_(APPROVE_DECISIONS),
                     db.or_(Lease.id.is_(None), Lease.status != LeaseStatus.TERMINATED))
             .order_by(MoveInIssue.admin_decision_at.desc(), MoveInIssue.id.desc())
             .first())
    if issue is None:
        return None
    if issue.lease is None:
        raise InvariantViolation(f"Move-in issue {issue.id} has no lease linked")
    return terminate_with_refunds(issue.lease_id, clock=clock, context=context)


# --- Refunds ----------------------------------------------------------------

def _claim_payment(payment_id):
    """COMPLETED -> REFUNDING, committed. False if another caller got there first."""
    try:
        claimed = Payment.query.filter_by(id=payment_id, status=PaymentStatus.COMPLETED).update(
            {'status': PaymentStatus.REFUNDING}, synchronize_session='fetch')
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Could not claim payment %s for refund", payment_id)
        raise TransactionFailure(f"Claiming payment {payment_id} failed: {e}") from e
    return bool(claimed)


def refund_offer_payments(offer_id, context=None, clock=None, actor_id=None):
    """
    Refund every completed payment of an offer through its gateway.

    Each payment is claimed (COMPLETED -> REFUNDING) before the gateway is
    called, so overlapping calls never refund the same payment twice. A
    successful refund moves it to CANCELLED; a failed one puts it back to
    COMPLETED for a retry. A payment left in REFUNDING means the refund was
    issued but could not be recorded and must be reconciled by hand.

    Payments are committed independently; one failing gateway does not stop
    the others. Callers inspect the result list for 'error' entries.
    """
    clock = clock or get_clock()
    offer = _get(Offer, offer_id)
    pending = [p.id for p in offer.payments if p.is_refundable]

    results = []
    for payment_id in pending:
        if not _claim_payment(payment_id):
            logger.info("Payment %s is already being refunded, skipping", payment_id)
            continue
        payment = db.session.get(Payment, payment_id)
        provider = get_refund_provider(payment.gateway)
        outcome = provider.refund(payment, context)
        entry = {
            'payment_id': payment_id,
            'gateway': payment.gateway or provider.name,
            'outcome': outcome['status'],
            'provider_reference': outcome.get('refund_id'),
            'error_detail': outcome.get('error'),
            'live': provider.name in LIVE_REFUND_GATEWAYS,
        }

        if outcome['status'] == 'ok':
            payment.status = PaymentStatus.CANCELLED
            payment.refund_reference = outcome.get('refund_id')
            payment.refunded_at = clock.now()
            log_audit('REFUND', 'Payment', payment_id,
                      f"{entry['gateway']} refund {entry['provider_reference']}",
                      user_id=actor_id, commit=False)
        else:
            payment.status = PaymentStatus.COMPLETED
            logger.warning("Refund for payment %s via %s failed: %s",
                           payment_id, entry['gateway'], entry['error_detail'])

        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("Refund result for payment %s not recorded, left in REFUNDING", payment_id)
            entry['outcome'] = 'error'
            entry['error_detail'] = f'refund result not recorded: {e}'
        results.append(entry)

    return results


# --- Move-in issues ---------------------------------------------------------

def report_move_in_issue(lease_id, reporter_id, title, description=None, clock=None):
    clock = clock or get_clock()
    lease = _get(Lease, lease_id)
    if lease.status != LeaseStatus.ACTIVE:
        raise InvariantViolation(f"Lease {lease.id} is {lease.status.value}")
    if not title:
        raise ValidationError("Issue title is required")

    landlord_id = lease.property.landlord_id if lease.property else None
    if reporter_id not in (lease.tenant_id, landlord_id):
        raise ValidationError(f"User {reporter_id} is not a party to lease {lease.id}")

    issue = MoveInIssue(
        lease_id=lease.id,
        reporter_id=reporter_id,
        title=title,
        description=description,
        status=IssueStatus.OPEN,
        created_at=clock.now()
    )
    db.session.add(issue)
    db.session.flush()
    other = landlord_id if reporter_id == lease.tenant_id else lease.tenant_id
    notify(other, 'Move-in issue reported', title, entity_id=issue.id)

    _commit_or_fail('Issue report', lease_id=lease.id)
    return issue


def record_admin_decision(issue_id, decision, admin_id, notes=None, refund_amount=None,
                          clock=None, context=None):
    """
    Store an admin decision on a move-in issue. Approve-equivalent decisions
    then refund and terminate the lease.
    """
    clock = clock or get_clock()
    issue = _get(MoveInIssue, issue_id)

    if not isinstance(decision, AdminDecision):
        try:
            decision = AdminDecision[str(decision).upper()]
        except KeyError:
            raise ValidationError(f"Unknown decision {decision!r}")
    if issue.admin_decision is not None:
        raise ValidationError(f"Issue {issue.id} already decided ({issue.admin_decision.value})")
    if decision == AdminDecision.ACCEPTED and (not refund_amount or refund_amount <= 0):
        raise ValidationError("ACCEPTED decisions need a positive refund amount")
    if decision in APPROVE_DECISIONS:
        if issue.lease is None:
            raise InvariantViolation(f"Move-in issue {issue.id} has no lease linked")
        _check_cascade_preconditions(issue.lease)

    issue.admin_decision = decision
    issue.admin_decision_at = clock.now()
    issue.admin_decision_by = admin_id
    issue.admin_notes = notes
    issue.refund_amount = refund_amount if decision == AdminDecision.ACCEPTED else None
    if decision == AdminDecision.REJECT:
        issue.status = IssueStatus.CLOSED
    log_audit(f'ADMIN_DECISION_{decision.value}', 'MoveInIssue', issue.id, notes or '',
              user_id=admin_id, commit=False)
    _commit_or_fail('Admin decision', lease_id=issue.lease_id)

    termination = None
    if decision in APPROVE_DECISIONS:
        termination = terminate_with_refunds(issue.lease_id, clock=clock, actor_id=admin_id, context=context)
    return {'issue_id': issue_id, 'decision': decision.value, 'termination': termination}


# --- Renewal and date windows ----------------------------------------------

def renew_lease(lease_id, term_months=12, monthly_rent=None, actor_id=None, clock=None):
    clock = clock or get_clock()
    now = clock.now()
    lease = _get(Lease, lease_id)
    if term_months is None or term_months < 1:
        raise ValidationError("Renewal term must be at least one month")
    if lease.offer is not None and lease.offer.status != OfferStatus.PAID:
        raise InvariantViolation(f"Offer {lease.offer.id} is {lease.offer.status.value}; lease cannot be renewed")

    transition_lease(lease, LeaseStatus.RENEWED, now)
    start = lease.end_date + timedelta(days=1)
    renewed = Lease(
        offer_id=lease.offer_id,
        property_id=lease.property_id,
        tenant_id=lease.tenant_id,
        status=LeaseStatus.ACTIVE,
        start_date=start,
        end_date=add_months(start, term_months),
        rent_amount=monthly_rent if monthly_rent is not None else lease.rent_amount,
        renewed_from_id=lease.id,
        updated_at=now
    )
    db.session.add(renewed)
    db.session.flush()
    notify(lease.tenant_id, 'Lease renewed',
           f'Lease #{lease.id} renewed until {renewed.end_date.isoformat()}.', entity_id=renewed.id)
    log_audit('RENEW', 'Lease', lease.id, f"Renewed as lease {renewed.id} for {term_months} months",
              user_id=actor_id, commit=False)

    _commit_or_fail('Lease renewal', lease_id=lease_id)
    return renewed


def days_until_lease_end(lease, clock=None):
    clock = clock or get_clock()
    return (lease.end_date - clock.today()).days


def in_renewal_window(lease, clock=None, window_days=None):
    if window_days is None:
        window_days = current_app.config.get('RENEWAL_WINDOW_DAYS', 60)
    if lease.status != LeaseStatus.ACTIVE:
        return False
    return 0 <= days_until_lease_end(lease, clock) <= window_days


def lease_timeline(lease, clock=None):
    clock = clock or get_clock()
    days_left = days_until_lease_end(lease, clock)
    return {
        'lease_id': lease.id,
        'status': lease.status.value,
        'start_date': lease.start_date.isoformat(),
        'end_date': lease.end_date.isoformat(),
        'days_until_end': days_left,
        'in_renewal_window': in_renewal_window(lease, clock),
        'expired': days_left < 0,
    }


# --- Consistency checks ----------------------------------------------------

def find_lock_violations():
    """Rental requests whose is_locked flag disagrees with their in-flight offers."""
    violations = []
    for rental_request in RentalRequest.query.order_by(RentalRequest.id).all():
        in_flight = [o.id for o in rental_request.offers if o.status in IN_FLIGHT_OFFER_STATUSES]
        if rental_request.is_locked != bool(in_flight):
            violations.append({
                'rental_request_id': rental_request.id,
                'is_locked': rental_request.is_locked,
                'in_flight_offers': in_flight,
            })
    return violations


def property_status_mismatch(prop):
    if prop.status == PropertyStatus.MAINTENANCE:
        return False
    if prop.active_lease is not None:
        return prop.status == PropertyStatus.AVAILABLE or prop.availability
    return prop.status != PropertyStatus.AVAILABLE or not prop.availability


def find_property_status_violations():
    return [p for p in Property.query.order_by(Property.id).all() if property_status_mismatch(p)]


def sync_property_status(prop, clock=None):
    """Align status/availability with the active lease. Caller commits."""
    clock = clock or get_clock()
    if prop.active_lease is not None:
        prop.status = PropertyStatus.RENTED
        prop.availability = False
    else:
        prop.status = PropertyStatus.AVAILABLE
        prop.availability = True
    prop.updated_at = clock.now()
    return prop
