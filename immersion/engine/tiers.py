"""
immersion.engine.tiers — Tier Ladder State Machine
===================================================

Maps ``(total_characters, held_gates)`` to the single highest tier a
member is eligible for, and plans the role edits needed to make the
member's tier roles match.

The machine is memoryless: every evaluation starts from the current total
and the gate roles currently held, so manual role edits are corrected on
the member's next log or quiz pass.

This module is pure calculation — no database I/O, no Discord I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from immersion.config import TierRequirement

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------
def highest_eligible_tier(
    ladder: Sequence[TierRequirement],
    total_characters: int,
    held_gates: Iterable[str],
) -> TierRequirement | None:
    """Walk the ladder upward and return the best tier reached.

    A tier whose threshold is met but whose gate isn't held stops the
    walk: no amount of characters skips a gate.
    """
    held = set(held_gates)
    best: TierRequirement | None = None
    for tier in ladder:
        if total_characters < tier.threshold:
            break
        if tier.required_gate is not None and tier.required_gate not in held:
            break
        best = tier
    return best


def next_requirement(
    ladder: Sequence[TierRequirement],
    total_characters: int,
    held_gates: Iterable[str],
) -> TierRequirement | None:
    """First rung not yet satisfied — threshold unmet or gate missing."""
    held = set(held_gates)
    for tier in ladder:
        if total_characters < tier.threshold:
            return tier
        if tier.required_gate is not None and tier.required_gate not in held:
            return tier
    return None


# ---------------------------------------------------------------------------
# Reconciliation plan
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TierChange:
    """Role edits needed to bring a member's tier roles in line.

    Parameters
    ----------
    revoke : Tier ids to remove, lowest first.
    grant : Tier id to add, or None.
    announce : True only when ``grant`` is strictly above every tier the
        member held before — lateral fixes and demotions stay quiet.
    """

    revoke: tuple[str, ...] = ()
    grant: str | None = None
    announce: bool = False
    target: str | None = field(default=None, compare=False)

    @property
    def is_noop(self) -> bool:
        return not self.revoke and self.grant is None


def plan_tier_change(
    ladder: Sequence[TierRequirement],
    held_tiers: Iterable[str],
    computed: TierRequirement | None,
) -> TierChange:
    """Diff the tier roles a member holds against the computed tier.

    * computed is None → revoke everything held.
    * member holds exactly the computed tier → nothing to do.
    * otherwise → revoke every other held tier and grant the computed one
      if it isn't already held.
    """
    order = {t.tier_id: i for i, t in enumerate(ladder)}
    held = sorted((t for t in set(held_tiers) if t in order), key=order.__getitem__)

    if computed is None:
        return TierChange(revoke=tuple(held))

    target = computed.tier_id
    if held == [target]:
        return TierChange(target=target)

    revoke = tuple(t for t in held if t != target)
    grant = None if target in held else target
    announce = grant is not None and all(order[t] < order[target] for t in held)
    return TierChange(revoke=revoke, grant=grant, announce=announce, target=target)


def evaluate(
    ladder: Sequence[TierRequirement],
    total_characters: int,
    held_gates: Iterable[str],
    held_tiers: Iterable[str],
) -> TierChange:
    """Compute the eligible tier and plan the edits in one step."""
    computed = highest_eligible_tier(ladder, total_characters, held_gates)
    change = plan_tier_change(ladder, held_tiers, computed)
    if not change.is_noop:
        logger.info(
            "Tier change planned: total=%d target=%s revoke=%s grant=%s",
            total_characters, change.target, list(change.revoke), change.grant,
        )
    return change
