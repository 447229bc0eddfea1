#!/usr/bin/env python3
"""
Admin User Seed Script
Creates an admin user for the EZApply admin console.

Usage:
    python -m scripts.seed_admin <email> <password>

Example:
    python -m scripts.seed_admin admin@ezapply.ph securepassword123
"""
import sys
import os
from uuid import uuid4

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from ezapply.database import SessionLocal, init_db
from ezapply.models.db_models import UserDB, UserRole
from ezapply.auth import hash_password


def create_admin_user(db: Session, email: str, password: str) -> bool:
    """Create an admin user, or promote the existing account with that email."""
    existing = db.query(UserDB).filter(UserDB.email == email).first()

    if existing:
        if existing.role == UserRole.ADMIN.value:
            print(f"Error: '{email}' is already an admin.")
            return False
        if existing.is_deactivated:
            print(f"Error: '{email}' is deactivated and cannot be promoted.")
            return False
        existing.role = UserRole.ADMIN.value
        db.commit()
        print(f"Upgraded existing user '{email}' to admin role.")
        return True

    admin_user = UserDB(
        id=str(uuid4()),
        email=email,
        password_hash=hash_password(password),
        role=UserRole.ADMIN.value,
        session_version=0,
        is_deactivated=False,
    )

    db.add(admin_user)
    db.commit()

    print("Admin user created successfully!")
    print(f"  Email: {email}")
    print("  Role: admin")
    return True


def main():
    if len(sys.argv) != 3:
        print(__doc__)
        sys.exit(1)

    email = sys.argv[1]
    password = sys.argv[2]

    # Basic validation
    if len(password) < 8:
        print("Error: Password must be at least 8 characters.")
        sys.exit(1)

    if "@" not in email:
        print("Error: Invalid email format.")
        sys.exit(1)

    # Ensure tables exist
    init_db()

    db = SessionLocal()
    try:
        success = create_admin_user(db, email, password)
    except Exception as e:
        print(f"Error creating admin user: {e}")
        db.rollback()
        success = False
    finally:
        db.close()
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
