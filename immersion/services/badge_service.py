"""
immersion.services.badge_service — Role Gateway & Tier Sync
============================================================

Tier and gate "badges" are Discord roles.  The rest of the code only
needs three operations on them — list, grant, revoke — expressed by the
:class:`BadgeGateway` protocol.  :class:`DiscordBadgeGateway` implements it
over a guild; tests use an in-memory fake.

Gate roles are never mirrored into the database: the roles a member holds
at evaluation time *are* their passed gates.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Protocol

import discord

from immersion.engine.tiers import TierChange, evaluate

if TYPE_CHECKING:
    from immersion.config import ImmersionConfig

logger = logging.getLogger(__name__)


class BadgeGateway(Protocol):
    """Minimal view of an external role system."""

    async def held_role_ids(self, user_id: int) -> set[int]: ...

    async def grant(self, user_id: int, role_id: int, reason: str) -> bool: ...

    async def revoke(self, user_id: int, role_id: int, reason: str) -> None: ...


# ---------------------------------------------------------------------------
# Discord implementation
# ---------------------------------------------------------------------------
class DiscordBadgeGateway:
    """:class:`BadgeGateway` backed by a guild's member roles."""

    def __init__(self, guild: discord.Guild) -> None:
        self.guild = guild

    async def _member(self, user_id: int) -> discord.Member | None:
        member = self.guild.get_member(user_id)
        if member is not None:
            return member
        try:
            return await self.guild.fetch_member(user_id)
        except discord.NotFound:
            return None

    async def held_role_ids(self, user_id: int) -> set[int]:
        member = await self._member(user_id)
        if member is None:
            return set()
        return {role.id for role in member.roles}

    async def grant(self, user_id: int, role_id: int, reason: str) -> bool:
        """Add the role.  False when the member isn't in the guild."""
        member = await self._member(user_id)
        if member is None:
            logger.warning("Cannot grant role %d: member %d not in guild", role_id, user_id)
            return False
        await member.add_roles(discord.Object(id=role_id), reason=reason)
        return True

    async def revoke(self, user_id: int, role_id: int, reason: str) -> None:
        member = await self._member(user_id)
        if member is None:
            logger.warning("Cannot revoke role %d: member %d not in guild", role_id, user_id)
            return
        await member.remove_roles(discord.Object(id=role_id), reason=reason)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
async def held_gates(
    gateway: BadgeGateway, cfg: ImmersionConfig, user_id: int
) -> set[str]:
    """Gate ids the member currently holds the role for."""
    return cfg.gates_held(await gateway.held_role_ids(user_id))


async def sync_tier(
    gateway: BadgeGateway,
    cfg: ImmersionConfig,
    user_id: int,
    total_characters: int,
    extra_gates: Iterable[str] = (),
) -> TierChange:
    """Recompute the member's tier and edit their tier roles to match.

    Revokes happen before the grant.  Running this twice with the same
    inputs issues no role calls the second time.

    *extra_gates* are gates granted moments ago: discord.py only updates
    the cached member roles once the gateway echoes the change back, so a
    fresh grant may not be visible through ``held_role_ids`` yet.
    """
    roles = await gateway.held_role_ids(user_id)
    change = evaluate(
        cfg.tiers,
        total_characters,
        held_gates=cfg.gates_held(roles) | set(extra_gates),
        held_tiers=cfg.tiers_held(roles),
    )

    for tier_id in change.revoke:
        await gateway.revoke(user_id, cfg.tier_role_id(tier_id), "Tier recalculated")
    if change.grant is not None:
        await gateway.grant(user_id, cfg.tier_role_id(change.grant), "Tier reached")
        logger.info("Granted tier %s to %d (total %d)", change.grant, user_id, total_characters)
    return change
