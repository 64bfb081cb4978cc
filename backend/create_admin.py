"""Create an admin account, or reset and unlock an existing one.

Usage:
    python -m backend.create_admin
"""

from __future__ import annotations

import getpass

import backend.app.models.registry  # noqa: F401
from backend.app.core.database import SessionLocal
from backend.app.core.security import get_password_hash, validate_password_strength
from backend.app.models.user import RoleEnum
from backend.app.services.auth import register
from backend.app.services.users import get_user_by_email, write_transaction


def main() -> None:
    email = input("Email [admin@example.com]: ").strip().lower() or "admin@example.com"
    password = getpass.getpass("Password: ")
    pw_error = validate_password_strength(password) if password else "password cannot be empty"
    if pw_error:
        print(f"Error: {pw_error}")
        return

    db = SessionLocal()
    try:
        user = get_user_by_email(db, email)
        if user is None:
            name = input("Name [Administrator]: ").strip() or "Administrator"
            user = register(db, name=name, email=email, password=password, role=RoleEnum.ADMIN)
            print(f"Admin {email} created (id {user.id})")
            return

        with write_transaction(db):
            user.hashed_password = get_password_hash(password)
            user.role = RoleEnum.ADMIN
            user.login_attempts = 0
            user.account_locked = False
            user.lock_until = None
        print(f"{email} is now an admin; password reset and account unlocked (id {user.id})")
    finally:
        db.close()


if __name__ == "__main__":
    main()
