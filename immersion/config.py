"""
immersion.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for the deployment's identity settings, the tier
ladder, and the quiz catalog.  Everything here is loaded once at process
start and is immutable afterwards.

Usage::

    from immersion.config import load_config

    cfg = load_config()                 # reads ./config.yaml by default
    print(cfg.community_name)           # "Japanese Immersion"
    print([t.tier_id for t in cfg.tiers])
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from immersion.constants import (
    KOTOBA_BOT_ID,
    LEADERBOARD_PAGE_SIZE,
    QUIZ_FONT,
    QUIZ_TIME_LIMIT_MS,
    USER_ACTIVE_STATUS_REFRESH_INTERVAL,
)


# ---------------------------------------------------------------------------
# Ladder & catalog entries
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TierRequirement:
    """One rung of the tier ladder.

    ``required_gate`` names a quiz gate the member must hold before this
    tier (and anything above it) can be granted.
    """

    tier_id: str
    name: str
    role_id: int
    threshold: int
    required_gate: str | None = None


@dataclass(frozen=True, slots=True)
class QuizRequirement:
    """A Kotoba quiz configuration that grants a gate role when passed."""

    gate_id: str
    name: str
    role_id: int
    score_limit: int
    max_missed_questions: int
    deck_ids: frozenset[str]

    @property
    def sorted_deck_ids(self) -> list[str]:
        return sorted(self.deck_ids)


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ImmersionConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str
    bot_prefix: str
    guild_id: int

    # Ladder & quizzes
    tiers: tuple[TierRequirement, ...]
    quizzes: tuple[QuizRequirement, ...]

    # Optional
    congratulate_channel_ids: tuple[int, ...] = ()
    page_size: int = LEADERBOARD_PAGE_SIZE
    activity_refresh_hours: float = USER_ACTIVE_STATUS_REFRESH_INTERVAL.total_seconds() / 3600
    quiz_bot_id: int = KOTOBA_BOT_ID
    quiz_font: str = QUIZ_FONT
    quiz_answer_time_limit_ms: int = QUIZ_TIME_LIMIT_MS

    # Lookup tables, derived in __post_init__
    _tier_roles: dict[str, int] = field(default_factory=dict, repr=False, compare=False)
    _gate_roles: dict[str, int] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        validate_ladder(self.tiers, self.quizzes)
        self._tier_roles.update({t.tier_id: t.role_id for t in self.tiers})
        self._gate_roles.update({q.gate_id: q.role_id for q in self.quizzes})

    # -- id-keyed lookups ---------------------------------------------------
    def tier_role_id(self, tier_id: str) -> int:
        return self._tier_roles[tier_id]

    def tier(self, tier_id: str) -> TierRequirement:
        for t in self.tiers:
            if t.tier_id == tier_id:
                return t
        raise KeyError(tier_id)

    def quiz(self, gate_id: str) -> QuizRequirement:
        for q in self.quizzes:
            if q.gate_id == gate_id:
                return q
        raise KeyError(gate_id)

    def tiers_held(self, role_ids: set[int]) -> set[str]:
        """Tier ids whose role is among *role_ids*."""
        return {t for t, r in self._tier_roles.items() if r in role_ids}

    def gates_held(self, role_ids: set[int]) -> set[str]:
        """Gate ids whose role is among *role_ids*."""
        return {g for g, r in self._gate_roles.items() if r in role_ids}


def validate_ladder(
    tiers: tuple[TierRequirement, ...],
    quizzes: tuple[QuizRequirement, ...],
) -> None:
    """Reject a ladder whose thresholds don't strictly increase or whose
    gates aren't in the quiz catalog.

    Raises
    ------
    ValueError
        On the first problem found.
    """
    gate_ids = {q.gate_id for q in quizzes}
    previous: TierRequirement | None = None
    seen: set[str] = set()
    for tier in tiers:
        if tier.tier_id in seen:
            raise ValueError(f"Duplicate tier id {tier.tier_id!r}")
        seen.add(tier.tier_id)
        if previous is not None and tier.threshold <= previous.threshold:
            raise ValueError(
                f"Tier {tier.tier_id!r} threshold {tier.threshold} must be greater "
                f"than {previous.tier_id!r} threshold {previous.threshold}"
            )
        if tier.required_gate is not None and tier.required_gate not in gate_ids:
            raise ValueError(
                f"Tier {tier.tier_id!r} requires unknown quiz gate {tier.required_gate!r}"
            )
        previous = tier


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def parse_config(raw: dict) -> ImmersionConfig:
    """Build an :class:`ImmersionConfig` from an already-parsed YAML mapping."""
    tiers = tuple(
        TierRequirement(
            tier_id=str(t["id"]),
            name=t.get("name", str(t["id"])),
            role_id=int(t["role_id"]),
            threshold=int(t["threshold"]),
            required_gate=(str(t["gate"]) if t.get("gate") else None),
        )
        for t in raw["tiers"]
    )
    quizzes = tuple(
        QuizRequirement(
            gate_id=str(q["gate"]),
            name=q.get("name", str(q["gate"])),
            role_id=int(q["role_id"]),
            score_limit=int(q["score_limit"]),
            max_missed_questions=int(q["max_missed_questions"]),
            deck_ids=frozenset(str(d) for d in q["decks"]),
        )
        for q in raw.get("quizzes") or []
    )

    optional: dict = {}
    if raw.get("congratulate_channel_ids"):
        optional["congratulate_channel_ids"] = tuple(
            int(c) for c in raw["congratulate_channel_ids"]
        )
    if raw.get("page_size"):
        optional["page_size"] = int(raw["page_size"])
    if raw.get("activity_refresh_hours"):
        optional["activity_refresh_hours"] = float(raw["activity_refresh_hours"])
    if raw.get("quiz_bot_id"):
        optional["quiz_bot_id"] = int(raw["quiz_bot_id"])
    if raw.get("quiz_font"):
        optional["quiz_font"] = str(raw["quiz_font"])
    if raw.get("quiz_answer_time_limit_ms"):
        optional["quiz_answer_time_limit_ms"] = int(raw["quiz_answer_time_limit_ms"])

    return ImmersionConfig(
        community_name=raw["community_name"],
        bot_prefix=raw.get("bot_prefix", "!"),
        guild_id=int(raw["guild_id"]),
        tiers=tiers,
        quizzes=quizzes,
        **optional,
    )


def load_config(path: str | Path = "config.yaml") -> ImmersionConfig:
    """Read *path* and return an :class:`ImmersionConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If the tier ladder is misconfigured.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh)

    return parse_config(raw)
