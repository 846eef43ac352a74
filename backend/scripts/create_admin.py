from __future__ import annotations

import argparse
import os
import pathlib
import sys

sys.path.append(os.getcwd())
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from sqlalchemy import select

from talent_training.core.security import create_access_token
from talent_training.db.init_db import create_tables
from talent_training.db.session import SessionLocal
from talent_training.models.profile import Profile


def main() -> int:
    p = argparse.ArgumentParser(description="Create or promote an admin profile")
    p.add_argument("email")
    p.add_argument("--first-name", default="")
    p.add_argument("--last-name", default="")
    p.add_argument("--create-tables", action="store_true")
    p.add_argument("--print-token", action="store_true", help="print a short-lived access token")
    args = p.parse_args()

    email = args.email.strip().lower()
    if "@" not in email:
        print("email looks invalid", file=sys.stderr)
        return 2

    if args.create_tables:
        create_tables()

    db = SessionLocal()
    try:
        prof = db.scalar(select(Profile).where(Profile.email == email))
        if prof is None:
            prof = Profile(email=email, first_name=args.first_name or None, last_name=args.last_name or None)
            db.add(prof)
        prof.is_admin = True
        db.commit()
        db.refresh(prof)
        print(f"admin: {prof.email} ({prof.id})")
        if args.print_token:
            print(create_access_token(prof.id))
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
