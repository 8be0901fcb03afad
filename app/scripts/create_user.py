# app/scripts/create_user.py
"""
Seed a user from the command line:

    python -m app.scripts.create_user owner@example.com secret owner --first-name Asha
"""
import argparse
import asyncio

from sqlalchemy.future import select

from app.core.db import AsyncSessionLocal, init_models
from app.core.security import hash_password
from app.models.user_models import User, UserRole


async def create_user(email: str, password: str, role: UserRole, first_name=None, last_name=None, company_name=None):
    await init_models()
    async with AsyncSessionLocal() as session:
        existing = await session.execute(select(User).where(User.email == email.lower()))
        if existing.scalars().first():
            print(f"User '{email}' already exists")
            return
        user = User(
            email=email.lower(),
            password_hash=hash_password(password),
            role=role,
            first_name=first_name,
            last_name=last_name,
            company_name=company_name,
            is_active=True
        )
        session.add(user)
        await session.commit()
        print(f"{role.value.capitalize()} user '{email}' created!")


def main():
    parser = argparse.ArgumentParser(description="Create a user")
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("role", choices=[r.value for r in UserRole])
    parser.add_argument("--first-name")
    parser.add_argument("--last-name")
    parser.add_argument("--company-name")
    args = parser.parse_args()
    asyncio.run(
        create_user(
            args.email, args.password, UserRole(args.role),
            args.first_name, args.last_name, args.company_name,
        )
    )


if __name__ == "__main__":
    main()
