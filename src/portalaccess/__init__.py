from .config import LogLevel, PortalAccessConfig, load_config_from_env
from .exceptions import (
    AccessDeniedError,
    ConfigurationError,
    GrantTreeError,
    GrantTreeUnavailableError,
    InvalidFilterError,
    PortalAccessError,
    TransportError,
)
from .http import create_client
from .logging import (
    AccessLogFormatter,
    AccessLoggerAdapter,
    get_access_logger,
    redact_secrets,
    safe_log_value,
    safe_preview,
    setup_logging,
)
# query loads first: permissions.scopes builds criteria from query.filters
from .query import (
    FilterCriteriaBuilder,
    FilterCriterion,
    FilterMeta,
    FilterMetaClient,
    FilterRequest,
    Operator,
    PagedQuery,
    QueryExecutor,
    QueryPage,
    SortOrder,
    build_filter_request,
)
from .permissions import (
    DenyAll,
    Effect,
    GrantResolver,
    GrantTree,
    GrantTreeCache,
    NoRestriction,
    Restriction,
    ScopeExtractor,
    build_scope_criterion,
    merge_criteria,
)

__all__ = [
    'PortalAccessConfig',
    'LogLevel',
    'load_config_from_env',
    'PortalAccessError',
    'ConfigurationError',
    'TransportError',
    'GrantTreeError',
    'GrantTreeUnavailableError',
    'AccessDeniedError',
    'InvalidFilterError',
    'create_client',
    'safe_preview',
    'redact_secrets',
    'safe_log_value',
    'AccessLogFormatter',
    'AccessLoggerAdapter',
    'setup_logging',
    'get_access_logger',
    'GrantTree',
    'Effect',
    'GrantResolver',
    'GrantTreeCache',
    'ScopeExtractor',
    'NoRestriction',
    'Restriction',
    'DenyAll',
    'build_scope_criterion',
    'merge_criteria',
    'FilterCriterion',
    'FilterRequest',
    'FilterMeta',
    'FilterMetaClient',
    'FilterCriteriaBuilder',
    'Operator',
    'build_filter_request',
    'QueryExecutor',
    'QueryPage',
    'PagedQuery',
    'SortOrder',
]
