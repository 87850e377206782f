"""Row-level restrictions derived from the grant tree.

Turns ALLOW scopes into an ``IN`` criterion the record store understands::

    {"field": "organizationBranchId", "operator": "IN",
     "value": ["branch-1", "branch-9"], "dataType": "UUID"}

Restrictions are a tagged variant so "no scopes granted" can never be
mistaken for "no filter needed":

- :class:`NoRestriction` — nothing to merge (global access, or an empty
  scope set handed to :func:`build_scope_criterion`)
- :class:`Restriction` — merge this criterion
- :class:`DenyAll` — the caller may see no records; querying is refused
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from ..exceptions import AccessDeniedError
from ..query.filters import FilterCriterion, Operator
from .models import GrantTree, Section
from .resolver import resolve_action

logger = logging.getLogger(__name__)

DEFAULT_SCOPE_DATA_TYPE = "UUID"
UNKNOWN_TABLE = "Unknown"


@dataclass(frozen=True)
class NoRestriction:
    """No access restriction to merge."""

    reason: str = "empty"

    @property
    def criterion(self) -> None:
        return None


@dataclass(frozen=True)
class Restriction:
    """Restrict rows to the granted scope values."""

    criterion: FilterCriterion


@dataclass(frozen=True)
class DenyAll:
    """Caller holds no grant in the section; no rows may be returned."""

    section_id: Optional[str] = None

    @property
    def criterion(self) -> None:
        return None


ScopeRestriction = Union[NoRestriction, Restriction, DenyAll]


@dataclass(frozen=True)
class SectionScopeSummary:
    """Scope values and access level of one section.

    ``is_global_access`` is only true when an unconditional ALLOW action
    exists; scope-restricted access alone keeps it false.
    """

    scope_value_ids: tuple[str, ...] = ()
    has_access: bool = False
    is_global_access: bool = False


def _unique(values: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(values))


def build_scope_criterion(
    scope_values: Iterable[str],
    field_key: str,
    data_type: str = DEFAULT_SCOPE_DATA_TYPE,
) -> NoRestriction | Restriction:
    """Build the ``IN`` restriction for a set of scope values.

    Returns :class:`NoRestriction` for an empty set. That means "nothing to
    merge", NOT "restrict to nothing": callers enforcing deny-by-default must
    check emptiness themselves, or use :meth:`ScopeExtractor.restriction_for`.
    Value order is preserved.
    """
    values = list(_unique(scope_values))
    if not values:
        return NoRestriction()
    return Restriction(
        FilterCriterion(field=field_key, operator=Operator.IN, value=values, dataType=data_type)
    )


def merge_criteria(
    fixed: Iterable[FilterCriterion] = (),
    restriction: ScopeRestriction | None = None,
    user: Iterable[FilterCriterion] = (),
) -> list[FilterCriterion]:
    """Concatenate criteria in evaluation order: fixed, restriction, user.

    Raises:
        AccessDeniedError: If the restriction is :class:`DenyAll`.
    """
    if isinstance(restriction, DenyAll):
        raise AccessDeniedError(
            "No grant allows reading records in this section",
            section_id=restriction.section_id,
        )
    merged = list(fixed)
    if isinstance(restriction, Restriction):
        merged.append(restriction.criterion)
    merged.extend(user)
    return merged


class ScopeExtractor:
    """Collects granted scope values from a grant tree snapshot.

    Actions are evaluated with :func:`resolve_action`: scopes under an action
    whose explicit effect is DENY or NONE are never collected.
    """

    def __init__(self, tree: GrantTree | None) -> None:
        self.tree = tree or GrantTree.empty()

    def _sections(self, section_id: str | None) -> list[Section]:
        return [
            section
            for _, section in self.tree.iter_sections()
            if section_id is None or section.system_section_id == section_id
        ]

    def extract_scoped_values(self, section_id: str | None = None, table_name: str | None = None) -> frozenset[str]:
        """Distinct ALLOW scope values, optionally for one section and/or table."""
        return frozenset(self._ordered_values(section_id, table_name))

    def _ordered_values(self, section_id: str | None, table_name: str | None = None) -> tuple[str, ...]:
        values = []
        for section in self._sections(section_id):
            for action in section.actions:
                for scope in resolve_action(action).allowed_scopes:
                    if table_name is not None and scope.table_name != table_name:
                        continue
                    values.append(scope.scope_value_id)
        return _unique(values)

    def scopes_by_table(self, section_id: str) -> dict[str, list[str]]:
        """ALLOW scope values of a section grouped by ``tableName``."""
        grouped: dict[str, list[str]] = {}
        for section in self._sections(section_id):
            for action in section.actions:
                for scope in resolve_action(action).allowed_scopes:
                    bucket = grouped.setdefault(scope.table_name or UNKNOWN_TABLE, [])
                    if scope.scope_value_id not in bucket:
                        bucket.append(scope.scope_value_id)
        return grouped

    def has_scopes_defined(self, section_id: str) -> bool:
        return any(action.scopes for section in self._sections(section_id) for action in section.actions)

    def section_scope_summary(self, section_id: str) -> SectionScopeSummary:
        has_access = False
        is_global = False
        for section in self._sections(section_id):
            for action in section.actions:
                resolved = resolve_action(action)
                has_access = has_access or resolved.has_access
                is_global = is_global or resolved.unconditional
        return SectionScopeSummary(
            scope_value_ids=self._ordered_values(section_id),
            has_access=has_access,
            is_global_access=is_global,
        )

    def build_scope_criterion(
        self,
        field_key: str,
        section_id: str | None = None,
        data_type: str = DEFAULT_SCOPE_DATA_TYPE,
        table_name: str | None = None,
    ) -> NoRestriction | Restriction:
        """Shortcut for :func:`build_scope_criterion` over extracted values."""
        return build_scope_criterion(self._ordered_values(section_id, table_name), field_key, data_type)

    def restriction_for(
        self,
        section_id: str,
        field_key: str,
        data_type: str = DEFAULT_SCOPE_DATA_TYPE,
        table_name: str | None = None,
    ) -> ScopeRestriction:
        """Deny-by-default restriction for listing records of a section.

        - no granted action in the section → :class:`DenyAll`
        - an unconditional ALLOW action → :class:`NoRestriction` (global)
        - otherwise → :class:`Restriction` on the granted scope values
        """
        summary = self.section_scope_summary(section_id)
        if not summary.has_access:
            logger.warning("No grant in section %s; denying all rows", section_id)
            return DenyAll(section_id=section_id)
        if summary.is_global_access:
            return NoRestriction(reason="global")

        restriction = self.build_scope_criterion(field_key, section_id, data_type, table_name)
        if isinstance(restriction, NoRestriction):
            # Access came from scopes of another table only
            logger.warning(
                "No %s scopes granted in section %s; denying all rows",
                table_name or "matching",
                section_id,
            )
            return DenyAll(section_id=section_id)
        return restriction


__all__ = [
    "DEFAULT_SCOPE_DATA_TYPE",
    "DenyAll",
    "NoRestriction",
    "Restriction",
    "ScopeExtractor",
    "ScopeRestriction",
    "SectionScopeSummary",
    "build_scope_criterion",
    "merge_criteria",
]
