#!/usr/bin/env python3
"""Create a sign-in identity together with its profile row.

Usage:
    python scripts/create_user.py <email> <password> [full name]
"""

import sys
from pathlib import Path

# Add parent directory to path so we can import app modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.chat.bootstrap import display_name_for
from app.core.database import SessionLocal
from app.core.security import create_access_token, get_password_hash
from app.models.user import Identity, UserProfile


def create_user(email: str, password: str, full_name: str | None = None) -> Identity:
    """Insert the identity and matching profile, sharing one id."""
    metadata = {"full_name": full_name} if full_name else {}
    db = SessionLocal()
    try:
        existing = db.scalars(select(Identity).where(Identity.email == email)).first()
        if existing:
            print(f"❌ An identity with email '{email}' already exists!")
            sys.exit(1)

        identity = Identity(
            email=email,
            password_hash=get_password_hash(password),
            user_metadata=metadata,
        )
        db.add(identity)
        db.flush()
        db.add(
            UserProfile(
                id=identity.id,
                email=email,
                full_name=display_name_for(email, metadata),
            )
        )
        db.commit()
        return identity
    except SQLAlchemyError as e:
        db.rollback()
        print(f"❌ Error creating user: {e}")
        sys.exit(1)
    finally:
        db.close()


def main():
    if len(sys.argv) < 3:
        print("Usage: python create_user.py <email> <password> [full name]")
        print("\nExample:")
        print('  python create_user.py agent@example.com S3cret!pass "Support Agent"')
        sys.exit(1)

    email = sys.argv[1]
    password = sys.argv[2]
    full_name = " ".join(sys.argv[3:]) or None

    identity = create_user(email, password, full_name)
    print("✅ User created successfully!")
    print(f"   ID: {identity.id}")
    print(f"   Email: {identity.email}")
    print(f"\nAccess token:\n{create_access_token(identity.id)}")


if __name__ == "__main__":
    main()
