from models import (
    db, Conversation, ConversationParticipant, ConversationStatus, Offer, OfferStatus,
)


def _deny(code, reason):
    return {'allowed': False, 'reason': reason, 'code': code}


def can_chat(conversation_id, user_id):
    """
    Decide whether user_id may post into a conversation.

    Returns {'allowed': bool, 'reason': str|None, 'code': str|None}.
    Archived conversations never accept messages.
    """
    conversation = db.session.get(Conversation, conversation_id)
    if conversation is None:
        return _deny('NOT_FOUND', 'Conversation not found')

    participant = ConversationParticipant.query.filter_by(
        conversation_id=conversation.id, user_id=user_id).first()
    if participant is None:
        return _deny('NOT_MEMBER', 'Not a participant in this conversation')

    if conversation.status != ConversationStatus.ACTIVE:
        return _deny('CONVERSATION_NOT_ACTIVE', 'Conversation is not active')

    # Landlords can always reply about their own property
    if conversation.property is not None and conversation.property.landlord_id == user_id:
        return {'allowed': True, 'reason': None, 'code': None}

    if conversation.offer_id is not None:
        if conversation.offer is None or conversation.offer.status != OfferStatus.PAID:
            return _deny('PAYMENT_REQUIRED', 'Payment required to access chat')
    elif conversation.property_id is not None:
        paid_offer = Offer.query.filter_by(
            property_id=conversation.property_id, tenant_id=user_id, status=OfferStatus.PAID).first()
        if paid_offer is None:
            return _deny('PAYMENT_REQUIRED', 'Payment required to access chat')
    else:
        return _deny('INVALID_CONVERSATION', 'Invalid conversation')

    return {'allowed': True, 'reason': None, 'code': None}
