#!/usr/bin/env python3
# =============================================================================
# Create Admin
# =============================================================================
# Inserts an admin account into the admin collection.
#
# Usage:
#   python tools/create_admin.py --email admin@example.com --name Admin
#   (password is prompted unless --password is given)
# =============================================================================

import argparse
import getpass
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from handlers.base import iso_now, normalize_email
from src.runtime.deps import create_deps


def create_admin(store, email: str, password: str, name: str = "Admin") -> bool:
    """Insert an admin unless one with this email exists."""
    now = iso_now()
    return store.admin.insert_if_absent({
        "email": normalize_email(email),
        "password": password,
        "name": name,
        "token": "",
        "createdAt": now,
        "updatedAt": now,
    })


def main():
    parser = argparse.ArgumentParser(description="Create an admin account")
    parser.add_argument("--email", required=True, help="Admin email")
    parser.add_argument("--name", default="Admin", help="Display name")
    parser.add_argument("--password", help="Password (prompted when omitted)")
    parser.add_argument("--region", "-r", help="AWS region")
    args = parser.parse_args()

    password = args.password or getpass.getpass("Password: ")
    if not password:
        print("Password must not be empty", file=sys.stderr)
        sys.exit(1)

    deps = create_deps(region=args.region)
    print("Creating admin...")
    if create_admin(deps.store, args.email, password, args.name):
        print(f"Admin created successfully: {args.email}")
    else:
        print(f"Admin already exists: {args.email}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
