import sys
from datetime import date
from app import create_app
from models import Lease, LeaseStatus
from services import lifecycle
from services.clock import FixedClock

# Usage: python simulate_lease_dates.py 2026-08-01
if len(sys.argv) < 2:
    print("Usage: python simulate_lease_dates.py <YYYY-MM-DD>")
    sys.exit(1)

clock = FixedClock(date.fromisoformat(sys.argv[1]))
app = create_app()

with app.app_context():
    print(f"Simulating lease timelines as of {clock.today().isoformat()}")
    leases = Lease.query.filter(Lease.status == LeaseStatus.ACTIVE).order_by(Lease.end_date).all()
    if not leases:
        print("No active leases.")

    for lease in leases:
        t = lifecycle.lease_timeline(lease, clock=clock)
        flags = []
        if t['in_renewal_window']:
            flags.append('RENEWAL WINDOW')
        if t['expired']:
            flags.append('EXPIRED')
        print(f"Lease {lease.id}: ends {t['end_date']} ({t['days_until_end']} days) {' '.join(flags)}")
