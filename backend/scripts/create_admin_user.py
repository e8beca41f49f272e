#!/usr/bin/env python3
"""
Bootstrap script to create the first admin user.

Usage:
    python scripts/create_admin_user.py

Or via Docker:
    docker compose exec backend python scripts/create_admin_user.py

Interactive prompts will ask for:
- Name
- Email
- Password (hidden input)

Admin accounts are created confirmed; they do not go through the OTP step.
"""

import sys
import os
import getpass

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import SessionLocal
from app.models import User, UserRole
from app.services.credential_service import CredentialService, PasswordValidationError
from app.utils.security import sanitize_email


def create_admin_user():
    """Interactive script to create admin user"""
    print("=" * 60)
    print("  Salon Auth - Create Admin User")
    print("=" * 60)
    print()

    db = SessionLocal()
    credentials = CredentialService(db)

    try:
        # Check if any admin users exist
        existing_admin = db.query(User).filter(User.role == UserRole.ADMIN.value).first()
        if existing_admin:
            print("Warning: Admin user(s) already exist!")
            print(f"   Existing admin: {existing_admin.email}")
            print()
            response = input("Do you want to create another admin user? (yes/no): ").strip().lower()
            if response not in ['yes', 'y']:
                print("Aborted.")
                return

        print("Creating new admin user...")
        print()

        while True:
            name = input("Name: ").strip()
            if len(name) < 2:
                print("Name must be at least 2 characters")
                continue
            break

        # Prompt for email
        while True:
            email = sanitize_email(input("Email: "))
            if not email or '@' not in email:
                print("Invalid email address")
                continue

            if credentials.email_exists(email):
                print(f"Email '{email}' already exists")
                continue

            break

        # Prompt for password
        while True:
            password = getpass.getpass("Password: ")
            if not password:
                print("Password cannot be empty")
                continue

            # Validate password policy
            try:
                CredentialService.validate_password_policy(password, personal_data=[name, email.split("@")[0]])
            except PasswordValidationError as e:
                print(f"Password validation failed: {e}")
                print()
                continue

            # Confirm password
            password_confirm = getpass.getpass("Confirm password: ")
            if password != password_confirm:
                print("Passwords do not match")
                continue

            break

        print()
        print("Summary:")
        print(f"  Name:  {name}")
        print(f"  Email: {email}")
        print("  Role:  admin")
        print()

        response = input("Create this admin user? (yes/no): ").strip().lower()
        if response not in ['yes', 'y']:
            print("Aborted.")
            return

        admin_user = credentials.create(
            email=email,
            name=name,
            hashed_password=CredentialService.hash_password(password),
            role=UserRole.ADMIN.value,
            is_confirmed=True,
            is_active=True,
            accepts_privacy_notice=True,
        )

        print()
        print("=" * 60)
        print("Admin user created successfully!")
        print("=" * 60)
        print()
        print(f"User ID: {admin_user.id}")
        print(f"Email:   {admin_user.email}")
        print()
        print("You can now login with these credentials:")
        print("  POST /api/auth/login")
        print(f"  {{ \"email\": \"{email}\", \"password\": \"<your-password>\" }}")
        print()

    except KeyboardInterrupt:
        print("\n\nAborted by user.")
        db.rollback()
    except Exception as e:
        print(f"\nError creating admin user: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    create_admin_user()
