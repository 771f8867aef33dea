"""
Role-derived permissions.

Members belong to a project (or are approved for a technology) when one of
their role names contains the configured project/technology name.
"""

from __future__ import annotations

from typing import Any, Iterable

import discord


def role_names(member: Any) -> list[str]:
    return [role.name for role in getattr(member, "roles", ())]


def _matching(candidates: Iterable[str], tags: list[str]) -> list[str]:
    return [c for c in candidates if any(c.casefold() in tag.casefold() for tag in tags)]


def projects_for_member(member: Any, config: dict[str, Any]) -> list[str]:
    return _matching(config.get("projects") or [], role_names(member))


def technologies_for_member(member: Any, config: dict[str, Any]) -> list[str]:
    return _matching(config.get("technologies") or [], role_names(member))


def is_queue_admin(user: discord.abc.User | Any, config: dict[str, Any]) -> bool:
    """
    Admin user ids or admin role ids may moderate the queue. When neither list
    is configured, everyone may.
    """
    perms = config.get("permissions") or {}
    admin_uids = (perms.get("users") or {}).get("admin_ids") or []
    admin_rids = (perms.get("roles") or {}).get("admin_ids") or []
    if not admin_uids and not admin_rids:
        return True
    if user.id in admin_uids:
        return True
    return any(getattr(role, "id", None) in admin_rids for role in getattr(user, "roles", ()))
