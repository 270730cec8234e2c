"""Federation scope resolution and search.

Public API:
    parse_federation_config — tolerant federation document parser
    resolve_scope           — targets/repos/paths relevant to an upload
    FederatedSearcher       — parallel existence search with short-circuit
"""
from dupgate.federation.model import (
    FederationConfig,
    FederationTarget,
    ParseResult,
    ParseStatus,
    RepoScope,
    parse_federation_config,
)
from dupgate.federation.scope import ScopeMatch, resolve_scope
from dupgate.federation.searcher import FederatedSearcher, SearchOutcome, SearchResult

__all__ = [
    "FederatedSearcher",
    "FederationConfig",
    "FederationTarget",
    "ParseResult",
    "ParseStatus",
    "RepoScope",
    "ScopeMatch",
    "SearchOutcome",
    "SearchResult",
    "parse_federation_config",
    "resolve_scope",
]
