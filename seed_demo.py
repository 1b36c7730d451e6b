from datetime import date, timedelta
from app import create_app, db
from models import User, Property, RentalRequest
from werkzeug.security import generate_password_hash
from services import lifecycle

app = create_app()

with app.app_context():
    print("Seeding demo data...")

    landlord = User.query.filter_by(email='landlord@example.com').first()
    if not landlord:
        landlord = User(email='landlord@example.com', name='Demo Landlord',
                        password_hash=generate_password_hash('password'), role='landlord')
        db.session.add(landlord)

    tenant = User.query.filter_by(email='tenant@example.com').first()
    if not tenant:
        tenant = User(email='tenant@example.com', name='Demo Tenant',
                      password_hash=generate_password_hash('password'), role='tenant')
        db.session.add(tenant)
    db.session.commit()

    prop = Property(landlord_id=landlord.id, name='Demo Apartment', address='1 Demo Street', monthly_rent=1500.0)
    request = RentalRequest(tenant_id=tenant.id, location='Demo City', budget=1600.0,
                            move_in_date=date.today() + timedelta(days=30))
    db.session.add_all([prop, request])
    db.session.commit()
    print(f"Property {prop.id} and rental request {request.id} created.")

    offer = lifecycle.create_offer(request.id, prop.id, landlord.id,
                                   lease_start_date=request.move_in_date, rent_amount=1500.0,
                                   deposit_amount=1500.0)
    lifecycle.accept_offer(offer.id, actor_id=tenant.id)
    lease = lifecycle.mark_offer_paid(offer.id, gateway='PAYU', gateway_reference='DEMO-PAYU-1')
    print(f"Offer {offer.id} paid, lease {lease.id} active until {lease.end_date.isoformat()}.")
