from __future__ import annotations

from typing import Iterable

import discord

from lumen.commands import Capability
from lumen.config.settings import Settings


def resolve_capability(
    user_id: int,
    role_names: Iterable[str],
    settings: Settings,
) -> Capability:
    """
    Map a member's Discord roles onto the platform-neutral Capability.

    - elevated: holds any of `allowed_pro_roles`
    - bypass: the owner holding `bypass_role` (exempt from daily limits)
    - kb editor: holds any of `kb_editor_roles`, or is the owner / an admin
    """
    roles = list(role_names)
    is_owner = settings.owner_id is not None and user_id == settings.owner_id
    is_admin = user_id in settings.admin_ids

    pro_role = next((r for r in roles if r in settings.allowed_pro_roles), None)
    is_bypass = is_owner and settings.bypass_role in roles
    is_kb_editor = is_owner or is_admin or any(r in settings.kb_editor_roles for r in roles)

    return Capability(
        is_bypass=is_bypass,
        is_elevated=pro_role is not None,
        is_kb_editor=is_kb_editor,
        elevated_label=pro_role,
    )


def capability_for(user: discord.abc.User, settings: Settings) -> Capability:
    """Capability for an interaction/message author (DM users have no roles)."""
    role_names = [role.name for role in getattr(user, "roles", ())]
    return resolve_capability(user.id, role_names, settings)
