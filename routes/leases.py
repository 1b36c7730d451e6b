from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from models import db, Lease
from routes.auth import role_required, lifecycle_errors
from services import lifecycle
from services.errors import ValidationError

leases_bp = Blueprint('leases', __name__)

def lease_to_dict(lease):
    return {
        'id': lease.id,
        'offer_id': lease.offer_id,
        'property_id': lease.property_id,
        'tenant_id': lease.tenant_id,
        'status': lease.status.value,
        'start_date': lease.start_date.isoformat(),
        'end_date': lease.end_date.isoformat(),
        'rent_amount': lease.rent_amount,
        'renewed_from_id': lease.renewed_from_id,
    }

def _landlord_id(lease):
    return lease.property.landlord_id if lease.property else None

@leases_bp.route('/<int:lease_id>')
@login_required
def get_lease(lease_id):
    lease = db.get_or_404(Lease, lease_id)
    if current_user.role != 'admin' and current_user.id not in (lease.tenant_id, _landlord_id(lease)):
        return jsonify({'status': 'error', 'message': 'Not a party to this lease'}), 403
    return jsonify(lease_to_dict(lease))

@leases_bp.route('/<int:lease_id>/timeline')
@login_required
def timeline(lease_id):
    lease = db.get_or_404(Lease, lease_id)
    if current_user.role != 'admin' and current_user.id not in (lease.tenant_id, _landlord_id(lease)):
        return jsonify({'status': 'error', 'message': 'Not a party to this lease'}), 403
    return jsonify(lifecycle.lease_timeline(lease))

@leases_bp.route('/<int:lease_id>/renew', methods=['POST'])
@login_required
@role_required('landlord')
@lifecycle_errors
def renew(lease_id):
    lease = db.get_or_404(Lease, lease_id)
    if current_user.role != 'admin' and current_user.id != _landlord_id(lease):
        return jsonify({'status': 'error', 'message': 'Only the landlord can renew this lease'}), 403

    data = request.get_json() or {}
    try:
        term_months = int(data.get('term_months') or 12)
        monthly_rent = float(data['monthly_rent']) if data.get('monthly_rent') is not None else None
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid renewal terms: {e}")

    renewed = lifecycle.renew_lease(lease.id, term_months=term_months, monthly_rent=monthly_rent,
                                    actor_id=current_user.id)
    return jsonify({'status': 'success', 'lease': lease_to_dict(renewed)}), 201

@leases_bp.route('/<int:lease_id>/terminate', methods=['POST'])
@login_required
@role_required('admin')
@lifecycle_errors
def terminate(lease_id):
    result = lifecycle.terminate_with_refunds(lease_id, actor_id=current_user.id)
    cascade = result['cascade']
    failed = [r['payment_id'] for r in result['refunds'] if r['outcome'] == 'error']
    return jsonify({
        'status': 'success' if cascade['applied'] else 'noop',
        'message': cascade['message'],
        'cascade': cascade,
        'refunds': result['refunds'],
        'needs_retry': failed,
    })
