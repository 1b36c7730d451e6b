from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from models import AuditLog
from services.errors import (
    NotFound, ValidationError, InvariantViolation, TransactionFailure, LifecycleError,
)
from functools import wraps
import logging

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)

def role_required(*roles):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'status': 'error', 'message': 'Authentication required'}), 401

            # Allow Admin to access everything
            if current_user.role == 'admin':
                return f(*args, **kwargs)

            if current_user.role not in roles:
                return jsonify({'status': 'error', 'message': 'You do not have permission to access this resource.'}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator

def lifecycle_errors(f):
    """Map lifecycle exceptions to JSON error responses."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except NotFound as e:
            return jsonify({'status': 'error', 'message': str(e)}), 404
        except ValidationError as e:
            return jsonify({'status': 'error', 'message': str(e)}), 400
        except InvariantViolation as e:
            return jsonify({'status': 'error', 'message': str(e)}), 409
        except TransactionFailure as e:
            return jsonify({'status': 'error', 'message': str(e), 'lease_id': e.lease_id, 'offer_id': e.offer_id}), 500
        except LifecycleError as e:
            logger.exception("Unhandled lifecycle error")
            return jsonify({'status': 'error', 'message': str(e)}), 500
    return decorated_function


@auth_bp.route('/me')
@login_required
def me():
    return jsonify({
        'id': current_user.id,
        'email': current_user.email,
        'name': current_user.name,
        'role': current_user.role,
    })

@auth_bp.route('/audit_logs')
@login_required
@role_required('admin')
def view_audit_logs():
    query = AuditLog.query
    target_type = request.args.get('target_type')
    if target_type:
        query = query.filter(AuditLog.target_type == target_type)
    logs = query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(100).all()
    return jsonify([{
        'id': log.id,
        'user_id': log.user_id,
        'action': log.action,
        'target_type': log.target_type,
        'target_id': log.target_id,
        'details': log.details,
        'timestamp': log.timestamp.isoformat() if log.timestamp else None,
    } for log in logs])

