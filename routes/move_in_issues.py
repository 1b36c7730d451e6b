from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from models import MoveInIssue, IssueStatus
from routes.auth import role_required, lifecycle_errors
from services import lifecycle
from services.errors import ValidationError

issues_bp = Blueprint('move_in_issues', __name__)

def issue_to_dict(issue):
    return {
        'id': issue.id,
        'lease_id': issue.lease_id,
        'reporter_id': issue.reporter_id,
        'title': issue.title,
        'description': issue.description,
        'status': issue.status.value,
        'admin_decision': issue.admin_decision.value if issue.admin_decision else None,
        'admin_decision_at': issue.admin_decision_at.isoformat() if issue.admin_decision_at else None,
        'admin_notes': issue.admin_notes,
        'refund_amount': issue.refund_amount,
    }

@issues_bp.route('/', methods=['GET'])
@login_required
@role_required('admin')
def list_issues():
    query = MoveInIssue.query
    status = request.args.get('status')
    if status:
        try:
            query = query.filter(MoveInIssue.status == IssueStatus[status.upper()])
        except KeyError:
            return jsonify({'status': 'error', 'message': f'Unknown status {status}'}), 400
    issues = query.order_by(MoveInIssue.created_at.desc(), MoveInIssue.id.desc()).all()
    return jsonify([issue_to_dict(i) for i in issues])

@issues_bp.route('/', methods=['POST'])
@login_required
@lifecycle_errors
def report_issue():
    data = request.get_json() or {}
    if not data.get('lease_id'):
        return jsonify({'status': 'error', 'message': 'lease_id is required'}), 400
    try:
        lease_id = int(data['lease_id'])
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid lease_id {data['lease_id']!r}")

    issue = lifecycle.report_move_in_issue(
        lease_id,
        reporter_id=current_user.id,
        title=(data.get('title') or '').strip(),
        description=data.get('description'),
    )
    return jsonify({'status': 'success', 'issue': issue_to_dict(issue)}), 201

@issues_bp.route('/<int:issue_id>/decision', methods=['POST'])
@login_required
@role_required('admin')
@lifecycle_errors
def admin_decision(issue_id):
    data = request.get_json() or {}
    refund_amount = data.get('refund_amount')
    try:
        refund_amount = float(refund_amount) if refund_amount is not None else None
    except (TypeError, ValueError):
        raise ValidationError('Invalid refund amount')

    result = lifecycle.record_admin_decision(
        issue_id,
        data.get('decision'),
        admin_id=current_user.id,
        notes=data.get('notes'),
        refund_amount=refund_amount,
    )
    return jsonify({'status': 'success', **result})
