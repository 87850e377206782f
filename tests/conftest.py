"""Shared grant tree payloads."""

from __future__ import annotations

from typing import Any

import pytest


def make_action(action_id: str, code: str, effect: str | None = None, scopes: list[dict] | None = None) -> dict[str, Any]:
    action: dict[str, Any] = {"systemSectionActionId": action_id, "code": code, "name": code.title()}
    if effect is not None:
        action["effect"] = effect
    if scopes is not None:
        action["scopes"] = scopes
    return action


def make_scope(value_id: str, effect: str = "ALLOW", table: str | None = "Branch") -> dict[str, Any]:
    return {"scopeValueId": value_id, "effect": effect, "tableName": table}


@pytest.fixture
def grant_payload() -> dict[str, Any]:
    """One system with a scope-gated section and a CRUD section."""
    return {
        "systems": [
            {
                "systemId": "S1",
                "name": "Scheduling",
                "sections": [
                    {
                        "systemSectionId": "sec-1",
                        "name": "Appointments",
                        "actions": [
                            make_action("A1", "create", scopes=[make_scope("branch-9")]),
                        ],
                    },
                    {
                        "systemSectionId": "sec-2",
                        "name": "Patients",
                        "actions": [
                            make_action("A2", "list", "ALLOW", scopes=[make_scope("branch-1", "DENY")]),
                            make_action("A3", "update", "DENY", scopes=[make_scope("branch-2")]),
                            make_action("A4", "delete", "NONE"),
                            make_action(
                                "A5",
                                "export",
                                scopes=[make_scope("branch-3", "DENY"), make_scope("branch-4")],
                            ),
                        ],
                    },
                ],
            },
            {
                "systemId": "S2",
                "name": "Billing",
                "sections": [
                    {
                        "systemSectionId": "sec-3",
                        "name": "Invoices",
                        "actions": [make_action("A6", "list", "NONE")],
                    }
                ],
            },
        ]
    }
