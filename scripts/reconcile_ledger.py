#!/usr/bin/env python
"""
Ledger Reconciliation Job

Recomputes every account balance and budget spent total from stored transactions
and reports drift from the running totals.

Usage:
    python scripts/reconcile_ledger.py [--user-id ID] [--apply]

Options:
    --user-id: Process only specific user (default: all users)
    --apply: Write the corrected totals (default: report only)
"""
import sys
from pathlib import Path
from argparse import ArgumentParser

from dotenv import load_dotenv

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

load_dotenv()

from finance_tracker.db.core import get_db, UserDB
from finance_tracker.logging_config import setup_logging
from finance_tracker.services.reconciliation import reconcile_user


def run_reconciliation(user_id: int = None, apply: bool = False) -> int:
    """
    Reconcile all users (or a specific user). Returns the number of drifts found.
    """
    print("=" * 60)
    print(f"Running Ledger Reconciliation ({'apply' if apply else 'report only'})")
    print("=" * 60)

    db = next(get_db())

    try:
        if user_id:
            users = db.query(UserDB).filter(UserDB.db_id == user_id).all()
            if not users:
                print(f"User {user_id} not found")
                return 0
        else:
            users = db.query(UserDB).all()

        print(f"Processing {len(users)} user(s)...")

        total_drifts = 0
        for user in users:
            report = reconcile_user(db, user.db_id, apply=apply)
            drifts = report['account_drifts'] + report['category_drifts']
            total_drifts += len(drifts)

            print(f"\n--- {user.username} (ID: {user.db_id}): {len(drifts)} drift(s) ---")
            for drift in report['account_drifts']:
                print(f"  account {drift['account_id']} '{drift['account_name']}': "
                      f"{drift['recorded']} -> {drift['expected']}")
            for drift in report['category_drifts']:
                print(f"  budget {drift['budget_id']} category '{drift['name']}': "
                      f"{drift['recorded']} -> {drift['expected']}")

        print("\n" + "=" * 60)
        print("Job Complete!")
        print(f"  Drifts found: {total_drifts}")
        print(f"  Corrected: {'yes' if apply and total_drifts else 'no'}")
        print("=" * 60)
        return total_drifts

    finally:
        db.close()


def main():
    parser = ArgumentParser(description="Reconcile account balances and budget spending with transactions")

    parser.add_argument(
        '--user-id',
        type=int,
        help='Process only specific user ID'
    )

    parser.add_argument(
        '--apply',
        action='store_true',
        help='Write corrected totals instead of only reporting drift'
    )

    args = parser.parse_args()
    setup_logging()

    drifts = run_reconciliation(user_id=args.user_id, apply=args.apply)
    # Non-zero exit lets schedulers alert on unreconciled drift
    sys.exit(1 if drifts and not args.apply else 0)


if __name__ == "__main__":
    main()
