"""
Check vendor quota bookkeeping - replay every vendor's history and report
vendors whose counters and history disagree.

Exit code is 1 when any inconsistency is found.
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.client import VENDORS_TABLE, get_supabase
from repositories.vendor_repository import SupabaseVendorStore
from services.audit import verify_vendors


def check_vendor_quota() -> int:
    """Print a quota/history report for all vendors. Returns the number of bad vendors."""

    vendors = SupabaseVendorStore(get_supabase(), VENDORS_TABLE).list_all()
    reports = verify_vendors(vendors)
    bad = [r for r in reports if not r.ok]

    print("=" * 50)
    print("VENDOR QUOTA STATUS")
    print("=" * 50)
    print(f"Vendors checked:           {len(reports)}")
    print(f"History entries checked:   {sum(r.entries_checked for r in reports)}")
    print(f"Vendors with issues:       {len(bad)}")
    print(f"Total quota:               {sum(v.quota for v in vendors)}")
    print(f"Total used:                {sum(v.used for v in vendors)}")
    print("=" * 50)

    if bad:
        print("\nInconsistencies:")
        print("-" * 50)
        for report in bad:
            for issue in report.issues:
                where = f"entry #{issue.index}" if issue.index >= 0 else "vendor"
                print(f"{report.vendor_id} [{where}]: {issue.message}")
        print("-" * 50)

    return len(bad)


if __name__ == "__main__":
    sys.exit(1 if check_vendor_quota() else 0)
