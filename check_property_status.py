import sys
from app import create_app
from models import db
from services import lifecycle

app = create_app()
fix = '--fix' in sys.argv

with app.app_context():
    print("--- Checking Property Status ---")
    mismatched = lifecycle.find_property_status_violations()
    print(f"Found {len(mismatched)} properties out of sync with their leases.")

    for prop in mismatched:
        lease = prop.active_lease
        old = f"{prop.status.value}/{'available' if prop.availability else 'unavailable'}"
        if fix:
            lifecycle.sync_property_status(prop)
            new = f"{prop.status.value}/{'available' if prop.availability else 'unavailable'}"
            print(f"Property {prop.id} ({prop.name}): {old} -> {new}")
        else:
            print(f"Property {prop.id} ({prop.name}): {old}, active lease {lease.id if lease else None}")

    if fix:
        db.session.commit()
        print("--- Fix Complete ---")
    elif mismatched:
        sys.exit(1)
