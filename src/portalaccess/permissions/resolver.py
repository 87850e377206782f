"""Point queries against an in-memory grant tree.

Every check goes through :func:`resolve_action`, which holds the single
precedence order used across the package:

1. Explicit action effect ``DENY`` or ``NONE`` → denied. Scopes are not
   consulted.
2. Explicit action effect ``ALLOW`` → granted unconditionally, independent
   of any scope.
3. Action effect absent → granted iff at least one scope is ``ALLOW``.

Lookups that find nothing answer "denied" with effect ``NONE``; they never
raise. The resolver only reads the tree it was built from.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from .models import Action, Effect, GrantTree, Scope, Section, System

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedAction:
    """Outcome of evaluating one action.

    ``scopes`` is empty for explicit action-level effects; for scope-gated
    actions it holds the full scope list, partitioned into
    ``allowed_scopes`` and ``denied_scopes``.
    """

    has_access: bool
    effect: Effect
    unconditional: bool = False
    scopes: tuple[Scope, ...] = ()
    allowed_scopes: tuple[Scope, ...] = ()
    denied_scopes: tuple[Scope, ...] = ()


@dataclass(frozen=True)
class ScopeAccess:
    """Outcome of evaluating one scope value under one action."""

    has_access: bool
    effect: Effect


@dataclass(frozen=True)
class SystemSummary:
    """Per-system counts of granted vs. total actions."""

    system_id: str
    system_name: str
    total_sections: int
    total_actions: int
    allowed_actions: int

    @property
    def has_full_access(self) -> bool:
        return self.total_actions > 0 and self.allowed_actions == self.total_actions

    @property
    def has_partial_access(self) -> bool:
        return 0 < self.allowed_actions < self.total_actions

    @property
    def has_no_access(self) -> bool:
        return self.allowed_actions == 0


@dataclass(frozen=True)
class ActionDetail:
    """Full context of one action, for display and debugging."""

    system_id: str
    system_name: str
    section_id: str
    section_name: str
    action_id: str
    action_name: str
    action_code: str
    effect: Optional[Effect]
    scopes: tuple[Scope, ...]
    allowed_scopes: tuple[Scope, ...]
    denied_scopes: tuple[Scope, ...]
    has_access: bool

    @property
    def has_scopes(self) -> bool:
        return len(self.scopes) > 0


@dataclass(frozen=True)
class SectionPermissions:
    """CRUD-style summary of a section, derived from action codes."""

    can_create: bool = False
    can_list: bool = False
    can_update: bool = False
    can_delete: bool = False
    actions: tuple[Action, ...] = ()
    all_actions: tuple[Action, ...] = ()


DENIED = ResolvedAction(has_access=False, effect=Effect.NONE)

# Action codes recognised as CRUD verbs (case-insensitive)
CRUD_CODE_PATTERNS = {
    "create": re.compile(r"^(create|cre|add|new)$", re.IGNORECASE),
    "list": re.compile(r"^(list|view|read|get)$", re.IGNORECASE),
    "update": re.compile(r"^(update|up|edit|modify)$", re.IGNORECASE),
    "delete": re.compile(r"^(delete|del|remove)$", re.IGNORECASE),
}

# Codes accepted by the can_read / can_update shortcuts
READ_CODES = ("read", "list")
UPDATE_CODES = ("update", "edit")


def resolve_action(action: Action) -> ResolvedAction:
    """Evaluate an action with the package-wide precedence order."""
    if action.effect in (Effect.DENY, Effect.NONE):
        return ResolvedAction(has_access=False, effect=action.effect)

    if action.effect == Effect.ALLOW:
        return ResolvedAction(has_access=True, effect=Effect.ALLOW, unconditional=True)

    allowed = tuple(s for s in action.scopes if s.is_allowed)
    denied = tuple(s for s in action.scopes if s.effect == Effect.DENY)
    return ResolvedAction(
        has_access=bool(allowed),
        effect=Effect.ALLOW if allowed else Effect.NONE,
        scopes=action.scopes,
        allowed_scopes=allowed,
        denied_scopes=denied,
    )


def resolve_scope(action: Action, scope_value_id: str) -> ScopeAccess:
    """Evaluate one scope value under an action.

    An unconditional action grant covers every scope value; an explicit
    action-level ``DENY``/``NONE`` overrides any scope grant.
    """
    resolved = resolve_action(action)
    if resolved.unconditional:
        return ScopeAccess(has_access=True, effect=Effect.ALLOW)
    if action.effect is not None:
        return ScopeAccess(has_access=False, effect=resolved.effect)

    scope = action.find_scope(scope_value_id)
    if scope is None:
        return ScopeAccess(has_access=False, effect=Effect.NONE)
    return ScopeAccess(has_access=scope.is_allowed, effect=scope.effect or Effect.NONE)


class GrantResolver:
    """Answers access questions against one grant tree snapshot.

    Example::

        resolver = GrantResolver(await cache.fetch())
        if resolver.can_perform_action("create", "branch-9"):
            ...
    """

    def __init__(self, tree: GrantTree | None) -> None:
        self.tree = tree or GrantTree.empty()
        self._by_action_id: dict[str, tuple[System, Section, Action]] = {}
        self._by_code: dict[str, list[tuple[System, Section, Action]]] = {}
        for system, section, action in self.tree.iter_actions():
            self._by_action_id[action.system_section_action_id] = (system, section, action)
            self._by_code.setdefault(action.code, []).append((system, section, action))

    # ── Systems ─────────────────────────────────────────

    def has_system_access(self, system_id: str) -> bool:
        """True iff the system appears in the caller's tree.

        This only proves the system entry exists; it does NOT mean any action
        under it is usable. Use :meth:`has_usable_system_access` or
        :meth:`accessible_systems` for "at least one granted action".
        """
        return self.tree.find_system(system_id) is not None

    def has_usable_system_access(self, system_id: str) -> bool:
        system = self.tree.find_system(system_id)
        if system is None:
            return False
        return any(resolve_action(a).has_access for section in system.sections for a in section.actions)

    def accessible_systems(self) -> list[SystemSummary]:
        """Summaries of systems with at least one granted action."""
        summaries = []
        for system in self.tree.systems:
            actions = [a for section in system.sections for a in section.actions]
            allowed = sum(1 for a in actions if resolve_action(a).has_access)
            if allowed == 0:
                continue
            summaries.append(
                SystemSummary(
                    system_id=system.system_id,
                    system_name=system.name,
                    total_sections=len(system.sections),
                    total_actions=len(actions),
                    allowed_actions=allowed,
                )
            )
        return summaries

    # ── Actions & scopes ────────────────────────────────

    def has_action_access(self, system_id: str, section_id: str, action_id: str) -> ResolvedAction:
        """Resolve an action located by system, section and action id."""
        system = self.tree.find_system(system_id)
        if system is None:
            logger.debug("System %s not in grant tree", system_id)
            return DENIED
        section = next((s for s in system.sections if s.system_section_id == section_id), None)
        if section is None:
            logger.debug("Section %s not in system %s", section_id, system_id)
            return DENIED
        action = next((a for a in section.actions if a.system_section_action_id == action_id), None)
        if action is None:
            logger.debug("Action %s not in section %s", action_id, section_id)
            return DENIED
        return resolve_action(action)

    def has_scope_access(self, action_id: str, scope_value_id: str) -> ScopeAccess:
        """Resolve one scope value under the action with this id."""
        found = self._by_action_id.get(action_id)
        if found is None:
            return ScopeAccess(has_access=False, effect=Effect.NONE)
        return resolve_scope(found[2], scope_value_id)

    def can_perform_action(
        self,
        action_code: str,
        scope_value_id: str | None = None,
        *,
        system_id: str | None = None,
        section_id: str | None = None,
    ) -> bool:
        """Check an action by code, optionally for one scope value.

        Without a scope value, a scope-gated action counts as performable
        when any of its scopes is allowed ("can do this somewhere").

        Action codes repeat across sections, so pass ``system_id`` and/or
        ``section_id`` to pin the action. An unpinned code matching more than
        one action is ambiguous and denied.
        """
        candidates = [
            (system, section, action)
            for system, section, action in self._by_code.get(action_code, ())
            if (system_id is None or system.system_id == system_id)
            and (section_id is None or section.system_section_id == section_id)
        ]
        if not candidates:
            return False
        if len(candidates) > 1:
            logger.warning(
                "Action code '%s' matches %d actions; pass system_id/section_id to disambiguate. Denying.",
                action_code,
                len(candidates),
            )
            return False

        action = candidates[0][2]
        if scope_value_id:
            return resolve_scope(action, scope_value_id).has_access
        return resolve_action(action).has_access

    def has_all(
        self,
        action_codes: Iterable[str],
        scope_value_id: str | None = None,
        *,
        system_id: str | None = None,
        section_id: str | None = None,
    ) -> bool:
        """True iff every code passes :meth:`can_perform_action`. No codes is True."""
        return all(
            self.can_perform_action(code, scope_value_id, system_id=system_id, section_id=section_id)
            for code in action_codes
        )

    def has_any(
        self,
        action_codes: Iterable[str],
        scope_value_id: str | None = None,
        *,
        system_id: str | None = None,
        section_id: str | None = None,
    ) -> bool:
        """True iff at least one code passes :meth:`can_perform_action`. No codes is False."""
        return any(
            self.can_perform_action(code, scope_value_id, system_id=system_id, section_id=section_id)
            for code in action_codes
        )

    def can_read(self, scope_value_id: str | None = None, **pin: str) -> bool:
        return self.has_any(READ_CODES, scope_value_id, **pin)

    def can_update(self, scope_value_id: str | None = None, **pin: str) -> bool:
        return self.has_any(UPDATE_CODES, scope_value_id, **pin)

    def action_details(self, action_id: str) -> ActionDetail | None:
        found = self._by_action_id.get(action_id)
        if found is None:
            return None
        system, section, action = found
        resolved = resolve_action(action)
        return ActionDetail(
            system_id=system.system_id,
            system_name=system.name,
            section_id=section.system_section_id,
            section_name=section.name,
            action_id=action.system_section_action_id,
            action_name=action.name,
            action_code=action.code,
            effect=action.effect,
            scopes=action.scopes,
            allowed_scopes=tuple(s for s in action.scopes if s.is_allowed),
            denied_scopes=tuple(s for s in action.scopes if s.effect == Effect.DENY),
            has_access=resolved.has_access,
        )

    # ── Sections ────────────────────────────────────────

    def _sections(self, section_id: str) -> list[Section]:
        return [section for _, section in self.tree.iter_sections() if section.system_section_id == section_id]

    def has_section_access(self, section_id: str) -> bool:
        """True if any action in the section resolves to granted."""
        return any(resolve_action(a).has_access for section in self._sections(section_id) for a in section.actions)

    def section_permissions(self, section_id: str) -> SectionPermissions:
        all_actions = tuple(a for section in self._sections(section_id) for a in section.actions)
        granted = tuple(a for a in all_actions if resolve_action(a).has_access)

        def _can(verb: str) -> bool:
            pattern = CRUD_CODE_PATTERNS[verb]
            return any(pattern.match(a.code) for a in granted)

        return SectionPermissions(
            can_create=_can("create"),
            can_list=_can("list"),
            can_update=_can("update"),
            can_delete=_can("delete"),
            actions=granted,
            all_actions=all_actions,
        )

    def find_section(self, name: str, system_name: str | None = None) -> tuple[System, Section] | None:
        """Case-insensitive lookup of a section by name."""
        wanted = name.lower()
        for system, section in self.tree.iter_sections():
            if system_name is not None and system.name.lower() != system_name.lower():
                continue
            if section.name.lower() == wanted:
                return system, section
        return None

    def find_action(self, code: str, section_name: str | None = None) -> tuple[System, Section, Action] | None:
        """Case-insensitive lookup of an action by code (first match)."""
        wanted = code.lower()
        for system, section, action in self.tree.iter_actions():
            if section_name is not None and section.name.lower() != section_name.lower():
                continue
            if action.code.lower() == wanted:
                return system, section, action
        return None


__all__ = [
    "ActionDetail",
    "DENIED",
    "GrantResolver",
    "ResolvedAction",
    "ScopeAccess",
    "SectionPermissions",
    "SystemSummary",
    "resolve_action",
    "resolve_scope",
]
