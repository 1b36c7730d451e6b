from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from datetime import datetime
import enum

db = SQLAlchemy()


# Status types. Stored by name (native_enum=False -> VARCHAR + CHECK)
class PoolStatus(enum.Enum):
    ACTIVE = 'ACTIVE'
    MATCHED = 'MATCHED'
    CANCELLED = 'CANCELLED'

class RequestStatus(enum.Enum):
    ACTIVE = 'ACTIVE'
    PENDING = 'PENDING'
    ACCEPTED = 'ACCEPTED'
    PAID = 'PAID'
    CANCELLED = 'CANCELLED'

class OfferStatus(enum.Enum):
    PENDING = 'PENDING'
    ACCEPTED = 'ACCEPTED'
    PAID = 'PAID'
    REJECTED = 'REJECTED'
    CANCELLED = 'CANCELLED'

class LeaseStatus(enum.Enum):
    ACTIVE = 'ACTIVE'
    TERMINATED = 'TERMINATED'
    RENEWED = 'RENEWED'

class PropertyStatus(enum.Enum):
    AVAILABLE = 'AVAILABLE'
    RENTED = 'RENTED'
    MAINTENANCE = 'MAINTENANCE'

class PaymentStatus(enum.Enum):
    PENDING = 'PENDING'
    COMPLETED = 'COMPLETED'
    REFUNDING = 'REFUNDING'
    CANCELLED = 'CANCELLED'

class PaymentPurpose(enum.Enum):
    RENT = 'RENT'
    DEPOSIT = 'DEPOSIT'
    DEPOSIT_AND_FIRST_MONTH = 'DEPOSIT_AND_FIRST_MONTH'

class ConversationStatus(enum.Enum):
    ACTIVE = 'ACTIVE'
    ARCHIVED = 'ARCHIVED'

class ParticipantRole(enum.Enum):
    TENANT = 'TENANT'
    LANDLORD = 'LANDLORD'

class IssueStatus(enum.Enum):
    OPEN = 'OPEN'
    RESOLVED = 'RESOLVED'
    CLOSED = 'CLOSED'

class AdminDecision(enum.Enum):
    APPROVE = 'APPROVE'
    REJECT = 'REJECT'
    ACCEPTED = 'ACCEPTED'


def status_column(enum_cls, default=None, nullable=False):
    return db.Column(
        db.Enum(enum_cls, native_enum=False, length=30, validate_strings=True),
        default=default,
        nullable=nullable,
    )


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    name = db.Column(db.String(100))
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False) # 'admin', 'landlord', 'tenant'

class AuditLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    action = db.Column(db.String(50), nullable=False) # e.g. 'TERMINATE', 'REFUND', 'ADMIN_DECISION_APPROVE'
    target_type = db.Column(db.String(50)) # e.g. 'Lease', 'MoveInIssue'
    target_id = db.Column(db.Integer)
    details = db.Column(db.Text)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', backref=db.backref('audit_logs', lazy=True))

class Property(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    landlord_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(200))
    monthly_rent = db.Column(db.Float, default=0.0)

    status = status_column(PropertyStatus, default=PropertyStatus.AVAILABLE)
    availability = db.Column(db.Boolean, default=True, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    landlord = db.relationship('User', backref=db.backref('properties', lazy=True))
    leases = db.relationship('Lease', backref='property', lazy=True)

    @property
    def active_lease(self):
        for lease in self.leases:
            if lease.status == LeaseStatus.ACTIVE:
                return lease
        return None

class RentalRequest(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    location = db.Column(db.String(120))
    budget = db.Column(db.Float)
    move_in_date = db.Column(db.Date)

    pool_status = status_column(PoolStatus, default=PoolStatus.ACTIVE)
    status = status_column(RequestStatus, default=RequestStatus.ACTIVE)
    # Set while an offer is in flight against this request
    is_locked = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    tenant = db.relationship('User', backref=db.backref('rental_requests', lazy=True))
    offers = db.relationship('Offer', backref='rental_request', lazy=True)

class Offer(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    rental_request_id = db.Column(db.Integer, db.ForeignKey('rental_request.id'), nullable=False)
    property_id = db.Column(db.Integer, db.ForeignKey('property.id'), nullable=False)
    landlord_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    tenant_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)

    status = status_column(OfferStatus, default=OfferStatus.PENDING)
    is_paid = db.Column(db.Boolean, default=False, nullable=False)
    payment_date = db.Column(db.DateTime, nullable=True)

    # Lease terms
    lease_start_date = db.Column(db.Date, nullable=False)
    lease_duration_months = db.Column(db.Integer, default=12, nullable=False)
    rent_amount = db.Column(db.Float, nullable=False)
    deposit_amount = db.Column(db.Float, default=0.0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    property = db.relationship('Property', backref=db.backref('offers', lazy=True))
    landlord = db.relationship('User', foreign_keys=[landlord_id])
    tenant = db.relationship('User', foreign_keys=[tenant_id])
    payments = db.relationship('Payment', backref='offer', lazy=True, order_by='Payment.id')
    leases = db.relationship('Lease', backref='offer', lazy=True, order_by='Lease.id')

class Lease(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    offer_id = db.Column(db.Integer, db.ForeignKey('offer.id'))
    property_id = db.Column(db.Integer, db.ForeignKey('property.id'))
    tenant_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)

    status = status_column(LeaseStatus, default=LeaseStatus.ACTIVE)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    rent_amount = db.Column(db.Float, nullable=False)

    terminated_at = db.Column(db.DateTime, nullable=True)
    renewed_from_id = db.Column(db.Integer, db.ForeignKey('lease.id'), nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    tenant = db.relationship('User', backref=db.backref('leases', lazy=True))
    issues = db.relationship('MoveInIssue', backref='lease', lazy=True)

class Payment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    offer_id = db.Column(db.Integer, db.ForeignKey('offer.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    amount = db.Column(db.Float, nullable=False)

    status = status_column(PaymentStatus, default=PaymentStatus.PENDING)
    purpose = status_column(PaymentPurpose, default=PaymentPurpose.DEPOSIT_AND_FIRST_MONTH)

    gateway = db.Column(db.String(20)) # STRIPE, PAYU, P24, TPAY
    gateway_reference = db.Column(db.String(120)) # e.g. Stripe payment intent id
    refund_reference = db.Column(db.String(120))
    refunded_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def is_refundable(self):
        return self.status == PaymentStatus.COMPLETED

class Conversation(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    property_id = db.Column(db.Integer, db.ForeignKey('property.id'))
    offer_id = db.Column(db.Integer, db.ForeignKey('offer.id'))
    status = status_column(ConversationStatus, default=ConversationStatus.ACTIVE)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    property = db.relationship('Property')
    offer = db.relationship('Offer', backref=db.backref('conversations', lazy=True))
    participants = db.relationship('ConversationParticipant', backref='conversation', lazy=True, cascade="all, delete-orphan")
    messages = db.relationship('Message', backref='conversation', lazy=True, cascade="all, delete-orphan", order_by='Message.id')

class ConversationParticipant(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey('conversation.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    role = status_column(ParticipantRole)

    __table_args__ = (db.UniqueConstraint('conversation_id', 'user_id'),)

class Message(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey('conversation.id'), nullable=False)
    sender_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    body = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

class MoveInIssue(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    lease_id = db.Column(db.Integer, db.ForeignKey('lease.id'))
    reporter_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    status = status_column(IssueStatus, default=IssueStatus.OPEN)

    # Admin adjudication
    admin_decision = status_column(AdminDecision, nullable=True)
    admin_decision_at = db.Column(db.DateTime, nullable=True)
    admin_decision_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    admin_notes = db.Column(db.Text)
    refund_amount = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    type = db.Column(db.String(50), default='SYSTEM_ANNOUNCEMENT')
    entity_id = db.Column(db.Integer)
    title = db.Column(db.String(200), nullable=False)
    body = db.Column(db.Text)
    is_read = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', backref=db.backref('notifications', lazy=True))
