import sys
from app import create_app
from models import db, RentalRequest
from services import lifecycle

app = create_app()
fix = '--fix' in sys.argv

with app.app_context():
    print("Checking rental request lock flags against in-flight offers...")
    violations = lifecycle.find_lock_violations()

    if not violations:
        print("All rental requests consistent.")
        sys.exit(0)

    for v in violations:
        state = 'locked' if v['is_locked'] else 'unlocked'
        print(f"Request {v['rental_request_id']}: {state}, in-flight offers {v['in_flight_offers']}")
        if fix:
            req = db.session.get(RentalRequest, v['rental_request_id'])
            req.is_locked = bool(v['in_flight_offers'])

    if fix:
        db.session.commit()
        print(f"Fixed {len(violations)} requests.")
    else:
        print(f"Found {len(violations)} inconsistent requests. Re-run with --fix to repair.")
        sys.exit(1)
