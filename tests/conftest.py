from datetime import date, datetime
from types import SimpleNamespace

import pytest
from flask_login import FlaskLoginClient
from werkzeug.security import generate_password_hash

from app import create_app
from models import db, User, Property, RentalRequest, MoveInIssue, AdminDecision
from services import lifecycle
from services.clock import FixedClock


@pytest.fixture()
def clock():
    return FixedClock(datetime(2025, 9, 1, 12, 0))


@pytest.fixture()
def app(clock):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SEED_ADMIN': False,
        'STRIPE_SECRET_KEY': 'sk_test_dummy',
        'LIFECYCLE_CLOCK': clock,
    })
    app.test_client_class = FlaskLoginClient

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def users(app):
    def make(email, role):
        return User(email=email, name=email.split('@')[0].title(),
                    password_hash=generate_password_hash('secret'), role=role)

    admin = make('admin@test.local', 'admin')
    landlord = make('landlord@test.local', 'landlord')
    tenant = make('tenant@test.local', 'tenant')
    db.session.add_all([admin, landlord, tenant])
    db.session.commit()
    return SimpleNamespace(admin=admin, landlord=landlord, tenant=tenant)


@pytest.fixture()
def listing(users):
    prop = Property(landlord_id=users.landlord.id, name='Flat 4B', address='Długa 12', monthly_rent=1200.0)
    rental_request = RentalRequest(tenant_id=users.tenant.id, location='Krakow', budget=1300.0,
                                   move_in_date=date(2025, 10, 1))
    db.session.add_all([prop, rental_request])
    db.session.commit()
    return SimpleNamespace(property=prop, request=rental_request)


@pytest.fixture()
def make_offer(users, listing):
    def _make():
        return lifecycle.create_offer(
            listing.request.id, listing.property.id, users.landlord.id,
            lease_start_date=date(2025, 10, 1), rent_amount=1200.0, deposit_amount=1200.0,
        )
    return _make


@pytest.fixture()
def make_paid_lease(make_offer):
    def _make(gateway='PAYU', gateway_reference='PAYU-TX-1'):
        offer = make_offer()
        lifecycle.accept_offer(offer.id)
        return lifecycle.mark_offer_paid(offer.id, gateway=gateway, gateway_reference=gateway_reference)
    return _make


@pytest.fixture()
def approve_issue(users):
    def _approve(lease, decision=AdminDecision.APPROVE):
        issue = MoveInIssue(
            lease_id=lease.id,
            reporter_id=users.tenant.id,
            title='Heating does not work',
            admin_decision=decision,
            admin_decision_at=datetime(2025, 10, 2, 9, 0),
            admin_decision_by=users.admin.id,
        )
        db.session.add(issue)
        db.session.commit()
        return issue
    return _approve
