from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from models import db, Conversation, Message, Notification
from services.chat_guard import can_chat
from utils import notify

conversations_bp = Blueprint('conversations', __name__)

@conversations_bp.route('/conversations/<int:conversation_id>/can-chat')
@login_required
def check_can_chat(conversation_id):
    return jsonify(can_chat(conversation_id, current_user.id))

@conversations_bp.route('/conversations/<int:conversation_id>/messages', methods=['GET'])
@login_required
def list_messages(conversation_id):
    conversation = db.get_or_404(Conversation, conversation_id)
    if current_user.id not in [p.user_id for p in conversation.participants]:
        return jsonify({'status': 'error', 'message': 'Not a participant in this conversation'}), 403
    return jsonify({
        'status': conversation.status.value,
        'messages': [{
            'id': m.id,
            'sender_id': m.sender_id,
            'body': m.body,
            'created_at': m.created_at.isoformat() if m.created_at else None,
        } for m in conversation.messages],
    })

@conversations_bp.route('/conversations/<int:conversation_id>/messages', methods=['POST'])
@login_required
def post_message(conversation_id):
    guard = can_chat(conversation_id, current_user.id)
    if not guard['allowed']:
        code = 404 if guard['code'] == 'NOT_FOUND' else 403
        return jsonify({'status': 'error', 'message': guard['reason'], 'code': guard['code']}), code

    data = request.get_json() or {}
    body = (data.get('body') or '').strip()
    if not body:
        return jsonify({'status': 'error', 'message': 'Message body is required'}), 400

    conversation = db.session.get(Conversation, conversation_id)
    try:
        message = Message(conversation_id=conversation.id, sender_id=current_user.id, body=body)
        db.session.add(message)
        for participant in conversation.participants:
            if participant.user_id != current_user.id:
                notify(participant.user_id, 'New message', body[:140], entity_id=conversation.id, type='MESSAGE')
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return jsonify({'status': 'error', 'message': str(e)}), 500

    return jsonify({'status': 'success', 'id': message.id}), 201

@conversations_bp.route('/notifications/')
@login_required
def list_notifications():
    query = Notification.query.filter_by(user_id=current_user.id)
    if request.args.get('unread'):
        query = query.filter_by(is_read=False)
    notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(50).all()
    return jsonify([{
        'id': n.id,
        'type': n.type,
        'entity_id': n.entity_id,
        'title': n.title,
        'body': n.body,
        'is_read': n.is_read,
        'created_at': n.created_at.isoformat() if n.created_at else None,
    } for n in notifications])
