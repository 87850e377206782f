"""Tests for scope extraction and row-level restrictions."""

from __future__ import annotations

import pytest

from portalaccess.exceptions import AccessDeniedError
from portalaccess.permissions import (
    DenyAll,
    GrantTree,
    NoRestriction,
    Restriction,
    ScopeExtractor,
    build_scope_criterion,
    merge_criteria,
)
from portalaccess.query import FilterCriterion

from .conftest import make_action, make_scope


def _tree(*sections: dict) -> GrantTree:
    return GrantTree.from_payload({"systems": [{"systemId": "S1", "sections": list(sections)}]})


def _section(section_id: str, *actions: dict) -> dict:
    return {"systemSectionId": section_id, "actions": list(actions)}


class TestBuildScopeCriterion:
    """Tests for build_scope_criterion."""

    def test_empty_is_no_restriction(self) -> None:
        result = build_scope_criterion([], "organizationBranchId")
        assert isinstance(result, NoRestriction)
        assert result.criterion is None

    def test_in_criterion_preserves_order(self) -> None:
        result = build_scope_criterion(["branch-2", "branch-1", "branch-2"], "organizationBranchId", "UUID")
        assert isinstance(result, Restriction)
        assert result.criterion.to_wire() == {
            "field": "organizationBranchId",
            "operator": "IN",
            "value": ["branch-2", "branch-1"],
            "dataType": "UUID",
        }


class TestMergeCriteria:
    """Tests for merge_criteria."""

    def test_order_fixed_restriction_user(self) -> None:
        fixed = [FilterCriterion(field="active", operator="EQUAL", value=True)]
        user = [FilterCriterion(field="name", operator="LIKE", value="ann")]
        restriction = build_scope_criterion(["b1"], "branchId")
        merged = merge_criteria(fixed, restriction, user)
        assert [c.field for c in merged] == ["active", "branchId", "name"]

    def test_no_restriction_adds_nothing(self) -> None:
        assert merge_criteria([], NoRestriction(reason="global"), []) == []

    def test_deny_all_refuses(self) -> None:
        with pytest.raises(AccessDeniedError) as exc_info:
            merge_criteria([], DenyAll(section_id="sec-1"), [])
        assert exc_info.value.details["section_id"] == "sec-1"


class TestScopeExtractor:
    """Tests for ScopeExtractor."""

    def test_values_distinct_across_actions(self) -> None:
        tree = _tree(
            _section("sec-1", make_action("A1", "list", scopes=[make_scope("b1"), make_scope("b2")])),
            _section("sec-2", make_action("A2", "create", scopes=[make_scope("b1")])),
        )
        assert ScopeExtractor(tree).extract_scoped_values() == frozenset({"b1", "b2"})

    def test_denied_actions_contribute_nothing(self) -> None:
        """Test that scopes under an explicit DENY/NONE action are skipped."""
        tree = _tree(
            _section(
                "sec-1",
                make_action("A1", "list", "DENY", scopes=[make_scope("b1")]),
                make_action("A2", "create", "NONE", scopes=[make_scope("b2")]),
                make_action("A3", "update", scopes=[make_scope("b3"), make_scope("b4", "DENY")]),
            )
        )
        assert ScopeExtractor(tree).extract_scoped_values("sec-1") == frozenset({"b3"})

    def test_filter_by_table(self) -> None:
        tree = _tree(
            _section(
                "sec-1",
                make_action("A1", "list", scopes=[make_scope("b1", table="Branch"), make_scope("r1", table="Region")]),
            )
        )
        extractor = ScopeExtractor(tree)
        assert extractor.extract_scoped_values("sec-1", table_name="Region") == frozenset({"r1"})
        assert extractor.scopes_by_table("sec-1") == {"Branch": ["b1"], "Region": ["r1"]}

    def test_unknown_table_bucket(self) -> None:
        tree = _tree(_section("sec-1", make_action("A1", "list", scopes=[make_scope("b1", table=None)])))
        assert ScopeExtractor(tree).scopes_by_table("sec-1") == {"Unknown": ["b1"]}

    def test_has_scopes_defined(self) -> None:
        tree = _tree(
            _section("sec-1", make_action("A1", "list", scopes=[make_scope("b1", "DENY")])),
            _section("sec-2", make_action("A2", "list", "ALLOW")),
        )
        extractor = ScopeExtractor(tree)
        assert extractor.has_scopes_defined("sec-1") is True
        assert extractor.has_scopes_defined("sec-2") is False

    def test_section_summary(self) -> None:
        tree = _tree(
            _section("sec-1", make_action("A1", "list", scopes=[make_scope("b1")])),
            _section("sec-2", make_action("A2", "list", "ALLOW")),
        )
        extractor = ScopeExtractor(tree)
        scoped = extractor.section_scope_summary("sec-1")
        assert scoped.scope_value_ids == ("b1",)
        assert scoped.has_access is True
        assert scoped.is_global_access is False
        assert extractor.section_scope_summary("sec-2").is_global_access is True

    def test_restriction_for_scoped_section(self) -> None:
        tree = _tree(_section("sec-1", make_action("A1", "list", scopes=[make_scope("b1"), make_scope("b2")])))
        restriction = ScopeExtractor(tree).restriction_for("sec-1", "branchId")
        assert isinstance(restriction, Restriction)
        assert restriction.criterion.value == ["b1", "b2"]
        assert restriction.criterion.data_type == "UUID"

    def test_restriction_for_global_section(self) -> None:
        tree = _tree(_section("sec-1", make_action("A1", "list", "ALLOW", scopes=[make_scope("b1")])))
        restriction = ScopeExtractor(tree).restriction_for("sec-1", "branchId")
        assert restriction == NoRestriction(reason="global")

    def test_restriction_for_denied_section(self) -> None:
        tree = _tree(_section("sec-1", make_action("A1", "list", "NONE", scopes=[make_scope("b1")])))
        assert ScopeExtractor(tree).restriction_for("sec-1", "branchId") == DenyAll(section_id="sec-1")

    def test_restriction_for_other_table_only(self) -> None:
        tree = _tree(_section("sec-1", make_action("A1", "list", scopes=[make_scope("r1", table="Region")])))
        restriction = ScopeExtractor(tree).restriction_for("sec-1", "branchId", table_name="Branch")
        assert isinstance(restriction, DenyAll)

    def test_empty_tree(self) -> None:
        extractor = ScopeExtractor(None)
        assert extractor.extract_scoped_values() == frozenset()
        assert isinstance(extractor.restriction_for("sec-1", "branchId"), DenyAll)
