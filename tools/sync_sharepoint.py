"""Pull the Odoo Excel exports from SharePoint into the reporting tables.

Usage:
  python tools/sync_sharepoint.py                 # every file in SYNC_FILES (default: all)
  python tools/sync_sharepoint.py sales waste     # selected kinds
  python tools/sync_sharepoint.py --json          # machine readable report
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from branchops.core.reporting.tables import REPORT_FILES
from branchops.core.sync.sharepoint import SyncError, run_sync

_STATUS_MARK = {"success": "OK  ", "failed": "FAIL", "skipped": "SKIP"}


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Sync SharePoint Excel exports into the reporting tables")
    p.add_argument(
        "kinds",
        nargs="*",
        help=f"file kinds to sync, any of: {', '.join(sorted(REPORT_FILES))} (default: SYNC_FILES)",
    )
    p.add_argument("--json", action="store_true", help="print the full report as JSON")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return p.parse_args(argv)


def _print_human(report: dict) -> None:
    for r in report["results"]:
        mark = _STATUS_MARK.get(r["status"], r["status"])
        if r["status"] == "success":
            print(f"{mark} {r['file']:<14} {r['rows']:>8} rows  {r['duration']:.1f}s")
        elif r["status"] == "failed":
            print(f"{mark} {r['file']:<14} {r['error']}")
        else:
            print(f"{mark} {r['file']:<14} {r['reason']}")

    s = report["summary"]
    print()
    print(f"Duration:   {s['duration']:.1f}s")
    print(f"Successful: {s['successful']}")
    print(f"Failed:     {s['failed']}")
    print(f"Skipped:    {s['skipped']}")
    print(f"Total rows: {s['totalRows']}")
    if s["failedFiles"]:
        print(f"Failed files: {', '.join(s['failedFiles'])}")


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        report = run_sync(args.kinds or None)
    except SyncError as e:
        print(f"sync aborted: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(report, indent=2, sort_keys=True))
    else:
        _print_human(report)
    return 1 if report["summary"]["failed"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
