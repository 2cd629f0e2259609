"""Create (or re-activate) the first administrator account and load the YAML seed.

  python tools/seed_admin.py --email admin@example.com --first-name Ada --last-name Admin
The password is read from BRANCHOPS_ADMIN_PASSWORD or prompted for.
"""

from __future__ import annotations

import argparse
import getpass
import json
import os
import sys
from typing import List, Optional

from branchops.core.auth.passwords import MIN_PASSWORD_LENGTH, hash_password
from branchops.core.auth.roles import UserRole, UserStatus
from branchops.core.branches.service import seed_if_empty
from branchops.core.db.base import utc_now
from branchops.core.db.models import User
from branchops.core.db.session import init_db, new_session
from branchops.core.users.service import find_by_email


def main(argv: Optional[List[str]] = None) -> int:
    p = argparse.ArgumentParser(description="Seed branches, role guides and an admin user")
    p.add_argument("--email", required=True)
    p.add_argument("--first-name", default="Admin")
    p.add_argument("--last-name", default="User")
    args = p.parse_args(argv)

    password = os.getenv("BRANCHOPS_ADMIN_PASSWORD") or getpass.getpass("Admin password: ")
    if len(password) < MIN_PASSWORD_LENGTH:
        print(f"password must be at least {MIN_PASSWORD_LENGTH} characters", file=sys.stderr)
        return 1

    init_db()
    db = new_session()
    try:
        seeded = seed_if_empty(db)
        user = find_by_email(db, args.email)
        created = user is None
        if created:
            user = User(
                email=args.email.strip().lower(),
                first_name=args.first_name,
                last_name=args.last_name,
                tours_completed=[],
            )
            db.add(user)
        user.password_hash = hash_password(password)
        user.role = UserRole.ADMIN.value
        user.status = UserStatus.ACTIVE.value
        user.approved_at = user.approved_at or utc_now()
        db.commit()
        report = {"admin": user.email, "user_id": user.id, "created": created, "seeded": seeded}
    finally:
        db.close()

    print(json.dumps(report, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
