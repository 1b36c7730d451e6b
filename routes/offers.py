from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from models import db, Offer, OfferStatus
from routes.auth import role_required, lifecycle_errors
from services import lifecycle
from services.errors import ValidationError
from utils import parse_date

offers_bp = Blueprint('offers', __name__)

def offer_to_dict(offer):
    return {
        'id': offer.id,
        'rental_request_id': offer.rental_request_id,
        'property_id': offer.property_id,
        'landlord_id': offer.landlord_id,
        'tenant_id': offer.tenant_id,
        'status': offer.status.value,
        'is_paid': offer.is_paid,
        'payment_date': offer.payment_date.isoformat() if offer.payment_date else None,
        'lease_start_date': offer.lease_start_date.isoformat(),
        'lease_duration_months': offer.lease_duration_months,
        'rent_amount': offer.rent_amount,
        'deposit_amount': offer.deposit_amount,
    }

def _is_party(offer):
    return current_user.role == 'admin' or current_user.id in (offer.tenant_id, offer.landlord_id)

def _forbidden():
    return jsonify({'status': 'error', 'message': 'Not a party to this offer'}), 403

@offers_bp.route('/', methods=['POST'])
@login_required
@role_required('landlord')
@lifecycle_errors
def create_offer():
    data = request.get_json() or {}

    required = ['rental_request_id', 'property_id', 'lease_start_date', 'rent_amount']
    missing = [k for k in required if not data.get(k)]
    if missing:
        return jsonify({'status': 'error', 'message': f"Missing required fields: {', '.join(missing)}"}), 400

    try:
        start = parse_date(data['lease_start_date'])
        rent = float(data['rent_amount'])
        deposit = float(data.get('deposit_amount') or 0)
        months = int(data.get('lease_duration_months') or 12)
        rental_request_id = int(data['rental_request_id'])
        property_id = int(data['property_id'])
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid offer terms: {e}")

    offer = lifecycle.create_offer(
        rental_request_id=rental_request_id,
        property_id=property_id,
        landlord_id=current_user.id,
        lease_start_date=start,
        rent_amount=rent,
        lease_duration_months=months,
        deposit_amount=deposit,
    )
    return jsonify({'status': 'success', 'offer': offer_to_dict(offer)}), 201

@offers_bp.route('/<int:offer_id>')
@login_required
def get_offer(offer_id):
    offer = db.get_or_404(Offer, offer_id)
    if not _is_party(offer):
        return _forbidden()
    return jsonify(offer_to_dict(offer))

@offers_bp.route('/<int:offer_id>/accept', methods=['POST'])
@login_required
@lifecycle_errors
def accept_offer(offer_id):
    offer = db.get_or_404(Offer, offer_id)
    if current_user.id != offer.tenant_id:
        return jsonify({'status': 'error', 'message': 'Only the tenant can accept an offer'}), 403

    offer = lifecycle.accept_offer(offer.id, actor_id=current_user.id)
    return jsonify({'status': 'success', 'offer': offer_to_dict(offer)})

@offers_bp.route('/<int:offer_id>/pay', methods=['POST'])
@login_required
@lifecycle_errors
def pay_offer(offer_id):
    offer = db.get_or_404(Offer, offer_id)
    if current_user.id != offer.tenant_id:
        return jsonify({'status': 'error', 'message': 'Only the tenant can pay an offer'}), 403

    data = request.get_json() or {}
    if not data.get('gateway'):
        return jsonify({'status': 'error', 'message': 'Payment gateway is required'}), 400

    try:
        amount = float(data['amount']) if data.get('amount') is not None else None
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid payment amount {data.get('amount')!r}")

    lease = lifecycle.mark_offer_paid(
        offer.id,
        gateway=data['gateway'],
        gateway_reference=data.get('gateway_reference'),
        amount=amount,
        payer_id=current_user.id,
    )
    return jsonify({'status': 'success', 'lease_id': lease.id, 'offer': offer_to_dict(lease.offer)})

@offers_bp.route('/<int:offer_id>/cancel', methods=['POST'])
@login_required
@lifecycle_errors
def cancel_offer(offer_id):
    offer = db.get_or_404(Offer, offer_id)
    if not _is_party(offer):
        return _forbidden()

    data = request.get_json() or {}
    try:
        status = OfferStatus[(data.get('status') or 'REJECTED').upper()]
    except KeyError:
        raise ValidationError(f"Unknown offer status {data.get('status')!r}")

    offer = lifecycle.cancel_offer(offer.id, status=status, actor_id=current_user.id, reason=data.get('reason'))
    return jsonify({'status': 'success', 'offer': offer_to_dict(offer)})

@offers_bp.route('/<int:offer_id>/refund', methods=['POST'])
@login_required
@role_required('admin')
@lifecycle_errors
def refund_offer(offer_id):
    results = lifecycle.refund_offer_payments(offer_id, actor_id=current_user.id)
    failed = [r for r in results if r['outcome'] == 'error']
    return jsonify({
        'status': 'partial' if failed else 'success',
        'refunds': results,
        'needs_retry': [r['payment_id'] for r in failed],
    })
