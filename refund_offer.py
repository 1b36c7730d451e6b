import sys
from app import create_app
from services import lifecycle
from services.errors import NotFound

if len(sys.argv) < 2:
    print("Usage: python refund_offer.py <offer_id>")
    sys.exit(1)

offer_id = int(sys.argv[1])
app = create_app()

with app.app_context():
    print(f"Refunding payments for offer {offer_id}...")
    try:
        results = lifecycle.refund_offer_payments(offer_id)
    except NotFound as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    if not results:
        print("Nothing to refund (all payments already terminal).")

    failed = 0
    for r in results:
        if r['outcome'] == 'ok':
            note = "" if r['live'] else " [LOCAL ONLY - settle manually]"
            print(f" - Payment {r['payment_id']} ({r['gateway']}): ok {r['provider_reference']}{note}")
        else:
            failed += 1
            print(f" - Payment {r['payment_id']} ({r['gateway']}): ERROR {r['error_detail']}")

    print(f"Done. {len(results) - failed} refunded, {failed} need retry.")
    sys.exit(1 if failed else 0)
