import os
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Honour any externally provided DATABASE_URL but fall back to an in-memory
# SQLite database so local runs remain isolated.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

# Ensure all SQLAlchemy models are registered with the declarative Base so
# metadata.create_all creates every table.
from leaguecore import db, models  # noqa: E402,F401
from leaguecore.rules import load_rule_set  # noqa: E402


@pytest.fixture()
def sqlite_sessionmaker(tmp_path):
    """Return an async context manager yielding a sessionmaker on a fresh DB.

    A file-backed database is used so concurrent sessions each get their own
    connection. Everything runs inside the caller's event loop.
    """

    counter = {"n": 0}

    @asynccontextmanager
    async def _factory():
        counter["n"] += 1
        path = tmp_path / f"stats-{counter['n']}.db"
        engine = db.build_engine(f"sqlite+aiosqlite:///{path}")
        async with engine.begin() as conn:
            await conn.run_sync(db.Base.metadata.create_all)
        try:
            yield sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
        finally:
            await engine.dispose()

    return _factory


@pytest.fixture()
def played_at():
    return datetime(2026, 3, 14, 17, 30, tzinfo=timezone.utc)


@pytest.fixture()
def goals_rules():
    return load_rule_set(
        {
            "name": "Foosball",
            "family": "Foosball",
            "tiesAllowed": True,
            "customStats": [
                {"name": "Goals", "dataType": "counter", "affectsScore": True, "pointValue": 1},
                {"name": "Fouls", "dataType": "counter"},
            ],
        },
        sport_id="foosball",
    )


@pytest.fixture()
def fouls_rules():
    return load_rule_set(
        {
            "name": "Foosball",
            "family": "Foosball",
            "tiesAllowed": False,
            "customStats": [
                {"name": "Goals", "dataType": "counter", "affectsScore": True, "pointValue": 1},
                {"name": "Fouls", "dataType": "counter"},
            ],
            "tiebreakers": [{"statName": "Fouls", "weight": -0.01}],
        },
        sport_id="foosball",
    )


@pytest.fixture()
def ping_pong_rules():
    return load_rule_set(
        {
            "name": "Ping Pong Singles",
            "family": "Ping Pong",
            "usesRounds": True,
            "maxRounds": 5,
            "winCondition": "roundWins",
        },
        sport_id="ping_pong_singles",
    )
