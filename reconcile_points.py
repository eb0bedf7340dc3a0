"""
Check every user's balance against the points ledger; repair drift with --fix
"""
import sys

from gamification.application.ledger import PointsLedger
from gamification.config import configure_logging
from gamification.infrastructure.db.session import get_db

configure_logging()
fix = "--fix" in sys.argv[1:]

db = next(get_db())

try:
    ledger = PointsLedger(db)
    user_ids = ledger.list_user_ids()
    print(f"Checking {len(user_ids)} user(s)...")

    drifted = 0
    for user_id in user_ids:
        result = ledger.reconcile(user_id)
        if result.consistent:
            continue
        drifted += 1
        print(f"  ✗ {user_id}: ledger={result.ledger_total} balance={result.balance}")
        if fix:
            ledger.rebuild_balance(user_id)
            db.commit()
            print(f"    ✓ rebuilt to {result.ledger_total}")

    if drifted:
        print(f"✗ Users with drift: {drifted}")
    else:
        print("✓ All balances match the ledger")

finally:
    db.close()

sys.exit(1 if drifted and not fix else 0)
