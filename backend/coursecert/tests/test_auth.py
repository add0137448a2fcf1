from datetime import datetime
import asyncio
import importlib
import pathlib
import sys

import pytest
from fastapi import HTTPException
from jose import jwt

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from coursecert import auth
from coursecert.crud import create_user
from coursecert.models import User
from coursecert.tests.factories import setup_db


async def _user(session, email, role="learner", status="active"):
    return await create_user(
        session,
        User(name=email.split("@")[0], email=email, password_hash="pw", role=role, status=status),
    )


def test_login_checks_the_hashed_password():
    async def run():
        Session = await setup_db()
        async with Session() as session:
            await _user(session, "ada@example.com")
            assert await auth.authenticate_user(session, "ada@example.com", "pw")
            assert await auth.authenticate_user(session, "ada@example.com", "nope") is None
            assert await auth.authenticate_user(session, "bob@example.com", "pw") is None

    asyncio.run(run())


def test_disabled_user_token_is_rejected():
    async def run():
        Session = await setup_db()
        async with Session() as session:
            await _user(session, "ada@example.com")
            disabled = await _user(session, "old@example.com", status="disabled")

            token = auth.create_access_token(data={"sub": "ada@example.com"})
            user = await auth.get_current_user(token=token, db=session)
            assert user.email == "ada@example.com"

            token = auth.create_access_token(data={"sub": disabled.email})
            with pytest.raises(HTTPException) as excinfo:
                await auth.get_current_user(token=token, db=session)
            assert excinfo.value.status_code == 401

            with pytest.raises(HTTPException):
                await auth.get_current_user(token="not-a-token", db=session)

    asyncio.run(run())


def test_require_role_rejects_other_roles():
    async def run():
        Session = await setup_db()
        async with Session() as session:
            learner = await _user(session, "ada@example.com")
            instructor = await _user(session, "vera@example.com", role="instructor")

            check = auth.require_role("instructor", "admin")
            assert await check(current_user=instructor) is instructor
            with pytest.raises(HTTPException) as excinfo:
                await check(current_user=learner)
            assert excinfo.value.status_code == 403

    asyncio.run(run())


def test_access_token_expiration_respects_env(monkeypatch):
    monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1")
    importlib.reload(auth)

    token = auth.create_access_token(data={"sub": "test"})
    decoded = jwt.decode(token, auth.SECRET_KEY, algorithms=[auth.ALGORITHM])
    exp = datetime.utcfromtimestamp(decoded["exp"])
    delta = exp - datetime.utcnow()
    assert 45 <= delta.total_seconds() <= 75

    monkeypatch.delenv("ACCESS_TOKEN_EXPIRE_MINUTES", raising=False)
    importlib.reload(auth)
    assert auth.ACCESS_TOKEN_EXPIRE_MINUTES == 30
