"""
immersion.services.quiz_service — Game Report → Gate Role Pipeline
===================================================================

Listens to Kotoba's end-of-game messages, fetches the linked game report,
and grants the matching gate role when the session passes.

Pipeline per "Game Report" embed field:
1. Author must be the trusted quiz bot (checked before any network call).
2. Extract the dashboard link and rewrite it to the API endpoint.
3. Fetch the report with httpx (no DB transaction is open meanwhile).
4. Verify it with :func:`immersion.engine.quiz.evaluate_session`.
5. On a pass: grant the gate role, congratulate, then re-run tier sync so
   a tier unlocked by the gate is granted straight away.

A failure in one field is logged and the next field is still processed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from immersion.constants import GAME_REPORT_FIELD_NAME
from immersion.database.engine import run_db
from immersion.engine.quiz import (
    QuizOutcome,
    QuizSession,
    QuizVerdict,
    evaluate_session,
    extract_report_url,
    to_api_url,
)
from immersion.services import ledger_service
from immersion.services.announcement_service import sync_and_announce

if TYPE_CHECKING:
    import discord

    from immersion.bot.core import ImmersionBot

logger = logging.getLogger(__name__)

UNREACHABLE_REPLY = (
    "⚠️ Couldn't reach the Kotoba report service to verify this quiz. "
    "Please try again later."
)
ONE_PARTICIPANT_REPLY = "❌ Only one participant is allowed in a gate quiz."
WRONG_SETTINGS_REPLY = (
    "❌ The quiz settings were incorrect. Use `/quizzes` to see the exact "
    "command for **{quiz}**."
)
PASSED_REPLY = "\U0001f389 <@{user_id}> passed the **{quiz}** quiz!"


async def fetch_session(client: httpx.AsyncClient, api_url: str) -> QuizSession | None:
    """GET the report.  Returns None on a transport error or non-2xx status.

    Raises
    ------
    QuizPayloadError
        If the body isn't a well-formed game report.
    """
    try:
        response = await client.get(api_url)
    except httpx.HTTPError as exc:
        logger.warning("Game report fetch failed for %s: %r", api_url, exc)
        return None
    if not response.is_success:
        logger.warning("Game report fetch for %s returned %d", api_url, response.status_code)
        return None
    return QuizSession.from_json(response.json())


async def process_report(
    bot: ImmersionBot, message: discord.Message, field_value: str
) -> QuizVerdict | None:
    """Verify one Game Report field and act on the verdict."""
    report_url = extract_report_url(field_value)
    if report_url is None:
        logger.debug("Game Report field without a link: %r", field_value)
        return None

    api_url = to_api_url(report_url)
    session = await fetch_session(bot.http_client, api_url)
    if session is None:
        await message.reply(UNREACHABLE_REPLY)
        return None

    cfg = bot.cfg
    verdict = evaluate_session(
        session,
        cfg.quizzes,
        font=cfg.quiz_font,
        answer_time_limit_ms=cfg.quiz_answer_time_limit_ms,
    )
    logger.info(
        "Quiz report %s: %s (gate=%s, participant=%s)",
        api_url,
        verdict.outcome,
        verdict.requirement.gate_id if verdict.requirement else None,
        verdict.participant_id,
    )

    match verdict.outcome:
        case QuizOutcome.NOT_A_GATE_QUIZ | QuizOutcome.FAILED_ATTEMPT:
            pass
        case QuizOutcome.TOO_MANY_PARTICIPANTS:
            await message.reply(ONE_PARTICIPANT_REPLY)
        case QuizOutcome.WRONG_SETTINGS:
            await message.reply(WRONG_SETTINGS_REPLY.format(quiz=verdict.requirement.name))
        case QuizOutcome.PASSED:
            await _grant_gate(bot, message, verdict)
    return verdict


async def _grant_gate(
    bot: ImmersionBot, message: discord.Message, verdict: QuizVerdict
) -> None:
    requirement = verdict.requirement
    user_id = verdict.participant_id
    assert requirement is not None and user_id is not None
    if bot.badges is None:
        logger.warning("Role gateway not ready; cannot grant %s to %d", requirement.gate_id, user_id)
        return

    granted = await bot.badges.grant(
        user_id, requirement.role_id, f"Passed {requirement.name} quiz"
    )
    if not granted:
        logger.warning(
            "Member %d passed %s but is not in the guild; nothing granted",
            user_id, requirement.gate_id,
        )
        return
    await message.reply(PASSED_REPLY.format(user_id=user_id, quiz=requirement.name))

    stats = await run_db(ledger_service.statistics, bot.engine, user_id)
    await sync_and_announce(
        bot,
        user_id=user_id,
        total_characters=stats.total_characters,
        fallback_channel=message.channel,
        extra_gates={requirement.gate_id},
    )


async def handle_message(bot: ImmersionBot, message: discord.Message) -> list[QuizVerdict]:
    """Scan a message for Game Report fields from the trusted quiz bot."""
    if message.author.id != bot.cfg.quiz_bot_id:
        return []

    verdicts: list[QuizVerdict] = []
    for embed in message.embeds:
        for field in embed.fields:
            if field.name != GAME_REPORT_FIELD_NAME or not field.value:
                continue
            try:
                verdict = await process_report(bot, message, field.value)
            except Exception:
                logger.exception(
                    "Error verifying game report in message %s", message.id,
                    extra={"message_id": message.id},
                )
                continue
            if verdict is not None:
                verdicts.append(verdict)
    return verdicts
