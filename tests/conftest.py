"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import BigInteger, Engine, create_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from immersion.config import ImmersionConfig, QuizRequirement, TierRequirement
from immersion.database.models import Base


# ---------------------------------------------------------------------------
# SQLite renders BigInteger as INTEGER so autoincrement works.
# ---------------------------------------------------------------------------
@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Immersion tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# A small ladder: T1 (100) → T2 (1,000, gated on G) → T3 (5,000)
# ---------------------------------------------------------------------------
TIER_ROLES = {"T1": 9001, "T2": 9002, "T3": 9003}
GATE_ROLES = {"G": 8001, "H": 8002}


def make_config(**overrides) -> ImmersionConfig:
    """Build a test config.  Keyword args override ImmersionConfig fields."""
    fields = {
        "community_name": "Test Readers",
        "bot_prefix": "!",
        "guild_id": 1,
        "tiers": (
            TierRequirement("T1", "Tier One", TIER_ROLES["T1"], 100),
            TierRequirement("T2", "Tier Two", TIER_ROLES["T2"], 1000, required_gate="G"),
            TierRequirement("T3", "Tier Three", TIER_ROLES["T3"], 5000),
        ),
        "quizzes": (
            QuizRequirement("G", "Gate Quiz", GATE_ROLES["G"], 20, 4, frozenset({"a", "b"})),
            QuizRequirement("H", "Other Quiz", GATE_ROLES["H"], 10, 4, frozenset({"c"})),
        ),
        "congratulate_channel_ids": (777,),
        "page_size": 15,
        "quiz_bot_id": 42,
        "quiz_font": "Eishiikaisho",
        "quiz_answer_time_limit_ms": 20000,
    }
    fields.update(overrides)
    return ImmersionConfig(**fields)


@pytest.fixture
def cfg() -> ImmersionConfig:
    return make_config()


class FakeBadgeGateway:
    """In-memory role store recording every grant and revoke.

    Members listed in *missing* have left the guild: grants to them fail.
    """

    def __init__(
        self, roles: dict[int, set[int]] | None = None, missing: set[int] | None = None
    ) -> None:
        self.roles: dict[int, set[int]] = roles or {}
        self.missing: set[int] = missing or set()
        self.calls: list[tuple[str, int, int]] = []

    async def held_role_ids(self, user_id: int) -> set[int]:
        return set(self.roles.get(user_id, set()))

    async def grant(self, user_id: int, role_id: int, reason: str) -> bool:
        if user_id in self.missing:
            return False
        self.calls.append(("grant", user_id, role_id))
        self.roles.setdefault(user_id, set()).add(role_id)
        return True

    async def revoke(self, user_id: int, role_id: int, reason: str) -> None:
        self.calls.append(("revoke", user_id, role_id))
        self.roles.setdefault(user_id, set()).discard(role_id)


class LaggingBadgeGateway(FakeBadgeGateway):
    """Role store whose reads trail its writes.

    Grants are recorded but only become visible to ``held_role_ids`` after
    ``flush()``, like a member cache still waiting on the gateway event.
    """

    def __init__(self, roles: dict[int, set[int]] | None = None) -> None:
        super().__init__(roles)
        self.visible: dict[int, set[int]] = {k: set(v) for k, v in self.roles.items()}

    async def held_role_ids(self, user_id: int) -> set[int]:
        return set(self.visible.get(user_id, set()))

    def flush(self) -> None:
        self.visible = {k: set(v) for k, v in self.roles.items()}


@pytest.fixture
def badges() -> FakeBadgeGateway:
    return FakeBadgeGateway()


def make_report(
    *,
    participants: tuple[int, ...] = (555,),
    scores: tuple[int, ...] = (20,),
    decks: tuple[str, ...] = ("b", "a"),
    score_limit: int = 20,
    max_missed: int = 4,
    font: str = "Eishiikaisho",
    time_limit: int = 20000,
) -> dict:
    """A Kotoba game report body, trimmed to the fields we read.

    Defaults describe a passing solo run of quiz G.
    """
    return {
        "participants": [{"discordUser": {"id": str(p), "username": "x"}} for p in participants],
        "scores": [{"score": s, "userId": "x"} for s in scores],
        "decks": [{"uniqueId": d, "name": d} for d in decks],
        "settings": {
            "scoreLimit": score_limit,
            "maxMissedQuestions": max_missed,
            "font": font,
            "answerTimeLimitInMs": time_limit,
        },
    }
