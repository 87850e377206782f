"""Tests for grant tree ingestion."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from portalaccess.exceptions import GrantTreeError
from portalaccess.permissions import Action, Effect, GrantTree, Scope

from .conftest import make_action, make_scope


class TestEffects:
    """Tests for effect parsing."""

    def test_effects_case_insensitive(self) -> None:
        assert Scope(scopeValueId="b", effect="allow").effect == Effect.ALLOW
        assert Action(systemSectionActionId="a", effect=" Deny ").effect == Effect.DENY

    def test_absent_effect_is_not_none_effect(self) -> None:
        """Test that a missing effect stays distinct from explicit NONE."""
        assert Action(systemSectionActionId="a").effect is None
        assert Action(systemSectionActionId="a", effect="").effect is None
        assert Action(systemSectionActionId="a", effect="NONE").effect == Effect.NONE

    def test_unknown_effect_rejected(self) -> None:
        with pytest.raises(GrantTreeError):
            GrantTree.from_payload(
                {"systems": [{"systemId": "S", "sections": [{"systemSectionId": "s", "actions": [make_action("a", "x", "MAYBE")]}]}]}
            )

    def test_scope_without_id_never_allowed(self) -> None:
        assert Scope(effect="ALLOW").is_allowed is False
        assert Scope(scopeValueId="b", effect="ALLOW").is_allowed is True


class TestGrantTree:
    """Tests for GrantTree.from_payload."""

    def test_from_payload(self, grant_payload) -> None:
        tree = GrantTree.from_payload(grant_payload)
        assert [s.system_id for s in tree.systems] == ["S1", "S2"]
        assert len(list(tree.iter_actions())) == 6
        assert tree.find_system("S2").name == "Billing"
        assert tree.find_system("S9") is None

    def test_null_lists_become_empty(self) -> None:
        tree = GrantTree.from_payload({"systems": [{"systemId": "S", "sections": None}]})
        assert tree.systems[0].sections == ()

    def test_legacy_section_key_normalized(self) -> None:
        payload = {"systems": [{"systemId": "S", "sections": [{"sectionId": "legacy-1", "actions": []}]}]}
        tree = GrantTree.from_payload(payload)
        assert tree.systems[0].sections[0].system_section_id == "legacy-1"

    def test_section_without_key_rejected(self) -> None:
        payload = {"systems": [{"systemId": "S", "sections": [{"name": "Orphan"}]}]}
        with pytest.raises(GrantTreeError, match="Invalid grant tree"):
            GrantTree.from_payload(payload)

    def test_duplicate_action_ids_rejected(self) -> None:
        payload = {
            "systems": [
                {"systemId": "S1", "sections": [{"systemSectionId": "a", "actions": [make_action("X", "list")]}]},
                {"systemId": "S2", "sections": [{"systemSectionId": "b", "actions": [make_action("X", "read")]}]},
            ]
        }
        with pytest.raises(GrantTreeError, match="duplicate"):
            GrantTree.from_payload(payload)

    def test_empty_payload_rejected(self) -> None:
        with pytest.raises(GrantTreeError) as exc_info:
            GrantTree.from_payload(None)
        assert exc_info.value.code == "GRANT_TREE_INVALID"

    def test_duplicate_scopes_kept_as_received(self) -> None:
        payload = {
            "systems": [
                {
                    "systemId": "S",
                    "sections": [
                        {
                            "systemSectionId": "s",
                            "actions": [make_action("a", "list", scopes=[make_scope("b1"), make_scope("b1")])],
                        }
                    ],
                }
            ]
        }
        tree = GrantTree.from_payload(payload)
        assert len(tree.systems[0].sections[0].actions[0].scopes) == 2

    def test_payload_round_trip(self, grant_payload) -> None:
        tree = GrantTree.from_payload(grant_payload)
        assert GrantTree.from_payload(tree.to_payload()) == tree

    def test_tree_is_frozen(self, grant_payload) -> None:
        tree = GrantTree.from_payload(grant_payload)
        with pytest.raises(ValidationError):
            tree.systems = ()  # type: ignore[misc]
