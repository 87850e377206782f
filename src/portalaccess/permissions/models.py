"""Grant tree data model.

The grant tree is the caller's full permission structure as returned by
``GET /auth/me/permissions``::

    GrantTree
      └── System        (systemId)
            └── Section     (systemSectionId)
                  └── Action      (systemSectionActionId, code, effect)
                        └── Scope       (scopeValueId, effect, tableName)

Models are frozen: a tree is replaced wholesale on refresh, never patched.
Field names follow the wire format through aliases, so
``GrantTree.from_payload(response.json())`` is the only ingestion path.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..exceptions import GrantTreeError


class Effect(str, Enum):
    """Outcome attached to an action or a scope.

    An absent effect (``None`` on the model) is distinct from ``NONE``:
    ``NONE`` is an explicit "not granted" and short-circuits scope evaluation,
    while an absent action effect defers to the scopes.
    """

    ALLOW = "ALLOW"
    DENY = "DENY"
    NONE = "NONE"


def _parse_effect(v: Any) -> Any:
    if isinstance(v, str):
        v = v.strip().upper()
        return v or None
    return v


def _none_to_empty(v: Any) -> Any:
    return () if v is None else v


class _GrantModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class Scope(_GrantModel):
    """One restriction value (e.g. a single branch) under an action."""

    scope_value_id: Optional[str] = Field(default=None, alias="scopeValueId")
    effect: Optional[Effect] = None
    table_name: Optional[str] = Field(default=None, alias="tableName")

    @field_validator("effect", mode="before")
    @classmethod
    def normalize_effect(cls, v: Any) -> Any:
        return _parse_effect(v)

    @property
    def is_allowed(self) -> bool:
        return self.effect == Effect.ALLOW and bool(self.scope_value_id)


class Action(_GrantModel):
    """An operation within a section, optionally gated by scopes."""

    system_section_action_id: str = Field(alias="systemSectionActionId")
    code: str = ""
    name: str = ""
    effect: Optional[Effect] = None
    scopes: tuple[Scope, ...] = ()

    @field_validator("effect", mode="before")
    @classmethod
    def normalize_effect(cls, v: Any) -> Any:
        return _parse_effect(v)

    @field_validator("scopes", mode="before")
    @classmethod
    def normalize_scopes(cls, v: Any) -> Any:
        return _none_to_empty(v)

    def find_scope(self, scope_value_id: str) -> Scope | None:
        for scope in self.scopes:
            if scope.scope_value_id == scope_value_id:
                return scope
        return None


class Section(_GrantModel):
    """A functional area of a system.

    ``systemSectionId`` is the only join key. Payloads that carry the legacy
    ``sectionId`` key instead are normalized at ingestion.
    """

    system_section_id: str = Field(alias="systemSectionId")
    name: str = ""
    actions: tuple[Action, ...] = ()

    @field_validator("actions", mode="before")
    @classmethod
    def normalize_actions(cls, v: Any) -> Any:
        return _none_to_empty(v)

    @model_validator(mode="before")
    @classmethod
    def normalize_section_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and "systemSectionId" not in data and "system_section_id" not in data:
            if data.get("sectionId"):
                data = {**data, "systemSectionId": data["sectionId"]}
            else:
                raise ValueError("section has neither systemSectionId nor sectionId")
        return data


class System(_GrantModel):
    """A top-level application the caller holds grants in."""

    system_id: str = Field(alias="systemId")
    name: str = ""
    sections: tuple[Section, ...] = ()

    @field_validator("sections", mode="before")
    @classmethod
    def normalize_sections(cls, v: Any) -> Any:
        return _none_to_empty(v)


class GrantTree(_GrantModel):
    """Root of the caller's grants.

    Invariant: ``systemSectionActionId`` is unique across the whole tree,
    so lookups by action id are unambiguous.
    """

    systems: tuple[System, ...] = ()

    @field_validator("systems", mode="before")
    @classmethod
    def normalize_systems(cls, v: Any) -> Any:
        return _none_to_empty(v)

    @model_validator(mode="after")
    def check_unique_action_ids(self) -> "GrantTree":
        seen: set[str] = set()
        for _, _, action in self.iter_actions():
            if action.system_section_action_id in seen:
                raise ValueError(f"duplicate systemSectionActionId: {action.system_section_action_id}")
            seen.add(action.system_section_action_id)
        return self

    @classmethod
    def empty(cls) -> "GrantTree":
        return cls()

    @classmethod
    def from_payload(cls, payload: Any) -> "GrantTree":
        """Validate a decoded ``/auth/me/permissions`` body.

        Raises:
            GrantTreeError: If the payload does not describe a valid tree.
        """
        if payload is None:
            raise GrantTreeError("Grant tree payload is empty")
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise GrantTreeError(f"Invalid grant tree: {e}", errors=e.errors()) from e

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def iter_sections(self) -> Iterator[tuple[System, Section]]:
        for system in self.systems:
            for section in system.sections:
                yield system, section

    def iter_actions(self) -> Iterator[tuple[System, Section, Action]]:
        for system, section in self.iter_sections():
            for action in section.actions:
                yield system, section, action

    def find_system(self, system_id: str) -> System | None:
        for system in self.systems:
            if system.system_id == system_id:
                return system
        return None


__all__ = [
    "Action",
    "Effect",
    "GrantTree",
    "Scope",
    "Section",
    "System",
]
