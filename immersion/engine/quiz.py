"""
immersion.engine.quiz — Kotoba Game Report Verification
========================================================

Parses the Kotoba game-report JSON into a :class:`QuizSession` and decides
whether it passes one of the configured gate quizzes.

Decision order for a session:

1. Deck set must equal a catalog entry's deck set exactly; otherwise the
   session isn't a gate quiz and is ignored.
2. Exactly one participant and one score, or it's rejected.
3. A score under the catalog ``score_limit`` is a failed attempt: ignored.
4. Score limit, max missed questions, font and answer time limit must all
   equal the configured values, or it's rejected.

Only mismatches the member can act on produce a reply.  This module is
pure — fetching lives in :mod:`immersion.services.quiz_service`.
"""

from __future__ import annotations

import enum
from collections.abc import Sequence
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

from immersion.config import QuizRequirement


class QuizPayloadError(ValueError):
    """The game report JSON is missing fields or has the wrong shape."""


class QuizOutcome(enum.StrEnum):
    """Result of checking a session against the quiz catalog."""
    NOT_A_GATE_QUIZ = "not_a_gate_quiz"
    TOO_MANY_PARTICIPANTS = "too_many_participants"
    FAILED_ATTEMPT = "failed_attempt"
    WRONG_SETTINGS = "wrong_settings"
    PASSED = "passed"


# ---------------------------------------------------------------------------
# Session record
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class QuizSettings:
    score_limit: int
    max_missed_questions: int
    font: str
    answer_time_limit_ms: int


@dataclass(frozen=True, slots=True)
class QuizSession:
    """The parts of a Kotoba game report that verification looks at."""

    participant_ids: tuple[int, ...]
    scores: tuple[int, ...]
    deck_ids: tuple[str, ...]
    settings: QuizSettings

    @property
    def sorted_deck_ids(self) -> list[str]:
        return sorted(set(self.deck_ids))

    @classmethod
    def from_json(cls, data: dict) -> QuizSession:
        """Build a session from the report API's JSON body.

        Raises
        ------
        QuizPayloadError
            If a required field is missing or mistyped.
        """
        try:
            settings = data["settings"]
            return cls(
                participant_ids=tuple(
                    int(p["discordUser"]["id"]) for p in data["participants"]
                ),
                scores=tuple(int(s["score"]) for s in data["scores"]),
                deck_ids=tuple(str(d["uniqueId"]) for d in data["decks"]),
                settings=QuizSettings(
                    score_limit=int(settings["scoreLimit"]),
                    max_missed_questions=int(settings["maxMissedQuestions"]),
                    font=str(settings["font"]),
                    answer_time_limit_ms=int(settings["answerTimeLimitInMs"]),
                ),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise QuizPayloadError(f"Malformed game report: {exc!r}") from exc


@dataclass(frozen=True, slots=True)
class QuizVerdict:
    outcome: QuizOutcome
    requirement: QuizRequirement | None = None
    participant_id: int | None = None


# ---------------------------------------------------------------------------
# Report URL handling
# ---------------------------------------------------------------------------
def extract_report_url(field_value: str) -> str | None:
    """Pull the link out of a markdown ``[text](url)`` field value."""
    start = field_value.find("(")
    if start == -1:
        return None
    end = field_value.find(")", start + 1)
    if end == -1:
        return None
    url = field_value[start + 1:end].strip()
    return url or None


def to_api_url(report_url: str) -> str:
    """Rewrite the dashboard link to the machine-readable endpoint.

    ``https://kotobaweb.com/dashboard/game_reports/abc``
    → ``https://kotobaweb.com/api/game_reports/abc``
    """
    parts = urlsplit(report_url)
    segments = ["api" if s == "dashboard" else s for s in parts.path.split("/")]
    return urlunsplit(parts._replace(path="/".join(segments)))


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------
def match_requirement(
    session: QuizSession, catalog: Sequence[QuizRequirement]
) -> QuizRequirement | None:
    """Catalog entry whose deck set equals the session's deck set."""
    decks = session.sorted_deck_ids
    for requirement in catalog:
        if requirement.sorted_deck_ids == decks:
            return requirement
    return None


def evaluate_session(
    session: QuizSession,
    catalog: Sequence[QuizRequirement],
    *,
    font: str,
    answer_time_limit_ms: int,
) -> QuizVerdict:
    requirement = match_requirement(session, catalog)
    if requirement is None:
        return QuizVerdict(QuizOutcome.NOT_A_GATE_QUIZ)

    if len(session.participant_ids) != 1 or len(session.scores) != 1:
        return QuizVerdict(QuizOutcome.TOO_MANY_PARTICIPANTS, requirement)

    participant_id = session.participant_ids[0]
    if session.scores[0] < requirement.score_limit:
        return QuizVerdict(QuizOutcome.FAILED_ATTEMPT, requirement, participant_id)

    settings = session.settings
    if (
        settings.max_missed_questions != requirement.max_missed_questions
        or settings.score_limit != requirement.score_limit
        or settings.font != font
        or settings.answer_time_limit_ms != answer_time_limit_ms
    ):
        return QuizVerdict(QuizOutcome.WRONG_SETTINGS, requirement, participant_id)

    return QuizVerdict(QuizOutcome.PASSED, requirement, participant_id)
