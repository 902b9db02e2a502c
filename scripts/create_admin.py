# create_admin.py

import os
import sys
from getpass import getpass

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.exc import SQLAlchemyError  # noqa: E402

from app import app  # noqa: E402
from flask_app.models import User, UserRole, db  # noqa: E402


def create_admin():
    with app.app_context():
        email = input("Enter email: ").strip()
        name = input("Enter display name: ").strip()

        if User.find_by_email(email):
            print("Error: Email already exists.")
            sys.exit(1)

        password = getpass("Enter password: ")
        password2 = getpass("Confirm password: ")

        if password != password2:
            print("Error: Passwords do not match.")
            sys.exit(1)

        if not password:
            print("Error: Password cannot be empty.")
            sys.exit(1)

        admin_user = User(email=email, name=name or None, role=UserRole.ADMIN, is_active=True)
        admin_user.set_password(password)
        db.session.add(admin_user)
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            print(f"Error creating admin account: {e}")
            sys.exit(1)

        print("Admin account created successfully!")
        print(f"   ID: {admin_user.id}")
        print(f"   Email: {admin_user.email}")
        print(f"   Role: {admin_user.role.value}")
        print("\nUse the ID with `flask users merge --admin-id` when merging accounts from the CLI.")


if __name__ == "__main__":
    create_admin()
