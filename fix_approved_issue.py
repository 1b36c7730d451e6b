import sys
from app import create_app
from services import lifecycle
from services.errors import InvariantViolation, TransactionFailure

app = create_app()

with app.app_context():
    print("--- Applying cascade for latest admin-approved move-in issue ---")

    try:
        result = lifecycle.apply_latest_approved_issue()
    except InvariantViolation as e:
        print(f"ABORTED: {e}")
        sys.exit(1)
    except TransactionFailure as e:
        print(f"FAILED (rolled back): {e}")
        sys.exit(1)

    if result is None:
        print("No admin-approved issues left to apply.")
        sys.exit(0)

    for refund in result['refunds']:
        if refund['outcome'] == 'ok':
            print(f"Refund payment {refund['payment_id']} via {refund['gateway']}: ok ({refund['provider_reference']})")
        else:
            print(f"Refund payment {refund['payment_id']} via {refund['gateway']}: ERROR {refund['error_detail']}")

    cascade = result['cascade']
    if cascade['applied']:
        print(f"Lease {cascade['lease_id']} -> TERMINATED")
        print(f"Offer {cascade['offer_id']} -> REJECTED (unpaid)")
        if cascade['rental_request_id']:
            print(f"Rental request {cascade['rental_request_id']} -> unlocked, CANCELLED")
        print(f"Property {cascade['property_id']} -> AVAILABLE")
        print(f"Archived {cascade['archived_conversations']} conversations")
        print("--- Cascade Complete ---")
    else:
        print(cascade['message'])
