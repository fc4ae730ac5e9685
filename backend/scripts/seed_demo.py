#!/usr/bin/env python
"""Idempotent seed script for staff accounts and a starter parts catalog.

Usage:
    python backend/scripts/seed_demo.py                 # seed normally
    python backend/scripts/seed_demo.py --dry-run       # run logic then rollback (no DB changes)
    python backend/scripts/seed_demo.py --show-stock    # print the inventory after seeding
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from decimal import Decimal
from sqlalchemy import select, text

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from repairshop import create_app, get_db  # type: ignore
from repairshop.constants.roles import ROLE_ADMIN, ROLE_TECHNICIAN
from repairshop.models.user import Base, User
from repairshop.models.inventory import Inventory

STARTER_PARTS = [
    # part_number, part_name, category, brand, quantity, unit_cost, selling_price
    ('SCR-IP12', 'iPhone 12 Screen', 'screens', 'Apple', 10, '60.00', '100.00'),
    ('BAT-IP12', 'iPhone 12 Battery', 'batteries', 'Apple', 15, '20.00', '45.00'),
    ('SCR-SGS21', 'Galaxy S21 Screen', 'screens', 'Samsung', 8, '70.00', '120.00'),
    ('CHG-USBC', 'USB-C Charging Port', 'ports', None, 25, '5.00', '15.00'),
    ('KBD-MBP13', 'MacBook Pro 13 Keyboard', 'keyboards', 'Apple', 4, '80.00', '150.00'),
]


def ensure_user(session, email: str, first_name: str, role: str):
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user:
        if user.role != role:
            print(f"[WARN] {email} exists with role {user.role}; leaving it unchanged")
        return 0
    session.add(User(email=email, first_name=first_name, last_name='Seed', role=role, is_active=True, is_verified=True))
    print(f"[INFO] Created {role} {email} (log in with an emailed OTP)")
    return 1


def ensure_parts(session):
    existing = {p for p in session.execute(select(Inventory.part_number)).scalars().all()}
    created = 0
    for number, name, category, brand, qty, cost, price in STARTER_PARTS:
        if number in existing:
            continue
        session.add(Inventory(part_number=number, part_name=name, category=category, brand=brand,
                              quantity=qty, unit_cost=Decimal(cost), selling_price=Decimal(price)))
        created += 1
    return created


def print_stock(session):
    rows = session.execute(select(Inventory).order_by(Inventory.part_number)).scalars().all()
    if not rows:
        print("[INFO] No inventory present.")
        return
    w = max(len(r.part_number) for r in rows)
    print(f"{'Part'.ljust(w)} | Qty | Price")
    print('-' * (w + 20))
    for r in rows:
        print(f"{r.part_number.ljust(w)} | {str(r.quantity).rjust(3)} | {r.selling_price}")


def parse_args():
    p = argparse.ArgumentParser(
        description="Seed staff users and starter inventory",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_demo.py\n  dry run: seed_demo.py --dry-run\n  show stock: seed_demo.py --show-stock\n""")
    )
    p.add_argument('--show-stock', action='store_true', help='Print inventory after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    with app.app_context():
        session = get_db()
        try:
            # Ensure tables exist (lightweight fallback if migrations not run yet)
            session.execute(text('SELECT 1 FROM users LIMIT 1'))
        except Exception:
            session.rollback()
            # Auto-create schema for bootstrap; in real env prefer alembic upgrade
            import repairshop.models.repair_order, repairshop.models.payment, repairshop.models.audit  # noqa: F401
            Base.metadata.create_all(session.get_bind())
        finally:
            session.commit()

    with app.app_context():
        session = get_db()
        created_u = ensure_user(session, os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com'), 'Admin', ROLE_ADMIN)
        created_u += ensure_user(session, os.getenv('SEED_TECH_EMAIL', 'tech@example.com'), 'Technician', ROLE_TECHNICIAN)
        created_p = ensure_parts(session)
        if args.dry_run:
            session.rollback()
            print(f"[DRY-RUN] (rolled back) Users would create: {created_u}, Parts would create: {created_p}")
        else:
            session.commit()
            print(f"[DONE] Users created: {created_u}, Parts created: {created_p}")
        if args.show_stock:
            print_stock(session)


if __name__ == '__main__':
    main()
