# src/cli/create_user.py
from __future__ import annotations
import argparse
from typing import List, Optional

from src.backend import tables
from src.services.auth_service import hash_password
from src.workflow.stages import PAGES

def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Create an operator, or reset an existing one's password (Argon2)")
    ap.add_argument("--user-id", required=True, help="Login name (users.user_id)")
    ap.add_argument("--password", required=True, help="New plaintext password")
    ap.add_argument("--name", help="Display name (defaults to the login name)")
    ap.add_argument("--role", choices=["Admin", "User"], default="User")
    ap.add_argument("--pages", default="", help=f"Comma separated page titles; choices: {', '.join(PAGES)}")
    args = ap.parse_args(argv)

    pages = [p.strip() for p in args.pages.split(",") if p.strip()]
    unknown = [p for p in pages if p not in PAGES]
    if unknown:
        ap.error(f"unknown pages: {', '.join(unknown)}")

    hashed = hash_password(args.password)
    existing = tables.find_one_ci("users", "user_id", args.user_id)
    if existing:
        values = {"password_hash": hashed, "status": "Active"}
        if args.name:
            values["user_name"] = args.name
        if pages:
            values["page_access"] = ",".join(pages)
        tables.update_rows("users", values, "id", existing["id"])
        print(f"[OK] Password reset for user_id={existing['user_id']} (argon2).")
        return 0

    new_id = tables.insert_row("users", {
        "user_name": args.name or args.user_id,
        "user_id": args.user_id,
        "password_hash": hashed,
        "role": args.role,
        "page_access": ",".join(pages),
        "status": "Active",
    })
    print(f"[OK] Created {args.role} user_id={args.user_id} (id={new_id}).")
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
