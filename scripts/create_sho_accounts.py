#!/usr/bin/env python3
"""
Create a Station House Officer account for every police station that has
cases on record but no SHO yet. Optionally bootstrap the SP account.

Usage:
    python scripts/create_sho_accounts.py [--password PASS] [--sp-username sp] [--dry-run]

Options:
    --password      Initial password for new accounts (default: $SHO_INITIAL_PASSWORD
                    or a random one printed at the end)
    --sp-username   Also create an SP account with this username if none exists
    --dry-run       List what would be created without writing anything
"""

from __future__ import annotations

import argparse
import logging
import os
import re
import secrets
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy.orm import Session

from casemonitor.db import SessionLocal, init_db
from casemonitor.logging_utils import configure_logging
from casemonitor.models import Case, User, UserRole
from casemonitor.security import hash_password

logger = logging.getLogger("create_sho_accounts")


def username_for_station(station: str) -> str:
    """'Davangere City PS' -> 'sho_davangerec'"""
    short = re.sub(r"\s+", "", station).lower()[:10]
    return f"sho_{short}"


def stations_without_sho(db: Session) -> list[str]:
    stations = [
        s for (s,) in db.query(Case.police_station).distinct().order_by(Case.police_station)
    ]
    covered = {
        s for (s,) in db.query(User.police_station).filter(User.role == UserRole.SHO)
    }
    return [s for s in stations if s not in covered]


def create_sho_accounts(db: Session, password: str, dry_run: bool = False) -> list[User]:
    created: list[User] = []
    existing_sho_count = db.query(User).filter(User.role == UserRole.SHO).count()
    password_hash = hash_password(password)

    for offset, station in enumerate(stations_without_sho(db)):
        username = username_for_station(station)
        if db.query(User).filter(User.username == username).first():
            # Truncated names can collide; fall back to a numbered username
            username = f"{username}{existing_sho_count + offset + 1}"
        user = User(
            username=username,
            password_hash=password_hash,
            name=f"SHO {station}",
            role=UserRole.SHO,
            police_station=station,
            employee_number=f"SHO{existing_sho_count + offset + 10:03d}",
            is_active=True,
        )
        logger.info("Creating %s for %s", username, station)
        created.append(user)
        if not dry_run:
            db.add(user)
            db.flush()

    if not dry_run:
        db.commit()
    return created


def create_sp_account(db: Session, username: str, password: str, dry_run: bool = False) -> User | None:
    if db.query(User).filter(User.role == UserRole.SP).first():
        logger.info("An SP account already exists; skipping")
        return None
    user = User(
        username=username,
        password_hash=hash_password(password),
        name="Superintendent of Police",
        role=UserRole.SP,
        police_station="District HQ",
        employee_number="SP001",
        is_active=True,
    )
    if dry_run:
        logger.info("Would create SP account %s", username)
        return user
    db.add(user)
    db.commit()
    logger.info("Created SP account %s", username)
    return user


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--password", default=os.getenv("SHO_INITIAL_PASSWORD"))
    parser.add_argument("--sp-username", default=None)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args(argv)

    configure_logging("INFO")
    password = args.password or secrets.token_urlsafe(9)

    init_db()
    db = SessionLocal()
    try:
        created = create_sho_accounts(db, password, dry_run=args.dry_run)
        if args.sp_username:
            sp = create_sp_account(db, args.sp_username, password, dry_run=args.dry_run)
            if sp is not None:
                created.append(sp)
    except Exception as e:
        db.rollback()
        logger.error(f"Account creation failed: {e}")
        return 1
    finally:
        db.close()

    if not created:
        print("All police stations already have SHO accounts.")
        return 0

    print(f"{'Username':<24} {'Role':<6} Police Station")
    print("-" * 70)
    for user in created:
        print(f"{user.username:<24} {user.role.value:<6} {user.police_station}")
    if not args.password:
        print(f"\nInitial password for these accounts: {password}")
    if args.dry_run:
        print("\n(dry run, nothing written)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
