"""Grant tree model, resolution and caching.

Defines:
- GrantTree and its System / Section / Action / Scope nodes
- GrantResolver: point queries with one precedence order
- ScopeExtractor: scope values and row-level restrictions
- GrantTreeCache: ETag-revalidated retrieval of the tree
"""

from .cache import GrantSnapshot, GrantTreeCache
from .models import Action, Effect, GrantTree, Scope, Section, System
from .resolver import (
    ActionDetail,
    GrantResolver,
    ResolvedAction,
    ScopeAccess,
    SectionPermissions,
    SystemSummary,
    resolve_action,
    resolve_scope,
)
from .scopes import (
    DenyAll,
    NoRestriction,
    Restriction,
    ScopeExtractor,
    ScopeRestriction,
    SectionScopeSummary,
    build_scope_criterion,
    merge_criteria,
)

__all__ = [
    "Action",
    "ActionDetail",
    "DenyAll",
    "Effect",
    "GrantResolver",
    "GrantSnapshot",
    "GrantTree",
    "GrantTreeCache",
    "NoRestriction",
    "ResolvedAction",
    "Restriction",
    "Scope",
    "ScopeAccess",
    "ScopeExtractor",
    "ScopeRestriction",
    "Section",
    "SectionPermissions",
    "SectionScopeSummary",
    "System",
    "SystemSummary",
    "build_scope_criterion",
    "merge_criteria",
    "resolve_action",
    "resolve_scope",
]
