"""Tests for the executables table and engine setup."""

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError

from exeforge.db.models import Executable
from exeforge.db.session import create_engine_and_sessions, init_models
from exeforge.resolver.types import DEFAULT_DESCRIPTION


def _row(**overrides) -> Executable:
    values = {
        "name": "cowsay",
        "version": "1.6.0",
        "ecosystem": "npm",
        "file_name": "cowsay_1.6.0_linux_1_abcdef",
        "file_size": 10,
    }
    values.update(overrides)
    return Executable(**values)


class TestExecutableModel:
    async def test_defaults(self, db_session):
        row = _row()
        db_session.add(row)
        await db_session.commit()
        await db_session.refresh(row)

        assert row.id is not None
        assert row.description == DEFAULT_DESCRIPTION
        assert row.tags == []
        assert row.downloads == 0
        assert row.created_at is not None
        assert row.updated_at is not None

    async def test_file_name_unique(self, db_session):
        db_session.add(_row())
        await db_session.commit()

        db_session.add(_row(version="1.7.0"))
        with pytest.raises(IntegrityError):
            await db_session.commit()

    async def test_package_version_unique_ignoring_name_case(self, db_session):
        db_session.add(_row())
        await db_session.commit()

        db_session.add(_row(name="CowSay", file_name="cowsay_1.6.0_windows_1_fedcba.exe"))
        with pytest.raises(IntegrityError):
            await db_session.commit()

    async def test_same_version_in_other_ecosystem_allowed(self, db_session):
        db_session.add(_row())
        db_session.add(_row(ecosystem="pip", file_name="cowsay_1.6.0_linux_1_012345"))
        await db_session.commit()

    @pytest.mark.parametrize(
        "overrides",
        [{"downloads": -1}, {"file_size": -5}, {"score": 5.5}, {"security_rating": 11.0}],
    )
    async def test_range_constraints(self, db_session, overrides):
        db_session.add(_row(**overrides))
        with pytest.raises(IntegrityError):
            await db_session.commit()

    async def test_optional_ratings_accept_bounds(self, db_session):
        row = _row(score=5.0, security_rating=0.0)
        db_session.add(row)
        await db_session.commit()

        assert row.score == 5.0


class TestSession:
    async def test_init_models_creates_table(self, settings):
        engine, session_factory = create_engine_and_sessions(settings)
        try:
            await init_models(engine)
            await init_models(engine)
            async with engine.connect() as conn:
                tables = await conn.run_sync(lambda c: inspect(c).get_table_names())
        finally:
            await engine.dispose()

        assert "executables" in tables

    def test_sessions_do_not_expire_on_commit(self, settings):
        _, session_factory = create_engine_and_sessions(settings)
        assert session_factory.kw["expire_on_commit"] is False
