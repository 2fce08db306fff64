import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError

from app.database import async_session_maker, get_db_context
from app.exceptions import StorageExceededError
from app.models.user import User
from app.utils.prometheus_metrics import db_errors_total
from tests.helpers import create_user


async def test_context_commits_on_success(db_session):
    user = await create_user(db_session, "alice")

    async with get_db_context() as db:
        (await db.get(User, user.id)).bio = "committed"

    async with async_session_maker() as other:
        assert (await other.get(User, user.id)).bio == "committed"


async def test_domain_error_rolls_back_without_counting_db_error(db_session):
    user = await create_user(db_session, "alice")
    before = db_errors_total._value.get()

    with pytest.raises(StorageExceededError):
        async with get_db_context() as db:
            (await db.get(User, user.id)).bio = "discarded"
            await db.flush()
            raise StorageExceededError(message="Insufficient storage")

    assert db_errors_total._value.get() == before
    async with async_session_maker() as other:
        assert (await other.get(User, user.id)).bio is None


async def test_sqlalchemy_error_is_counted(db_session):
    before = db_errors_total._value.get()

    with pytest.raises(OperationalError):
        async with get_db_context() as db:
            await db.execute(text("SELECT * FROM no_such_table"))

    assert db_errors_total._value.get() == before + 1


async def test_sqlite_foreign_keys_are_enforced(db_session):
    result = await db_session.execute(text("PRAGMA foreign_keys"))
    assert result.scalar_one() == 1
    assert (await db_session.execute(select(User))).scalars().all() == []
