from sqlalchemy import select

from app.core.security import verify_password
from app.models.user_models import User, UserRole
from app.scripts import create_user as script


async def test_create_user_seeds_once(monkeypatch, session_factory, capsys):
    async def no_init():
        return None

    monkeypatch.setattr(script, "AsyncSessionLocal", session_factory)
    monkeypatch.setattr(script, "init_models", no_init)

    await script.create_user("Vendor@Example.com", "pw-123", UserRole.vendor, company_name="Steel & Co")
    await script.create_user("vendor@example.com", "other", UserRole.vendor)

    async with session_factory() as session:
        users = (await session.execute(select(User))).scalars().all()
    assert len(users) == 1
    assert users[0].email == "vendor@example.com"
    assert users[0].company_name == "Steel & Co"
    assert verify_password("pw-123", users[0].password_hash)
    assert "already exists" in capsys.readouterr().out
