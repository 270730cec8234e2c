"""Shared constants for DupGate.

Defaults used across the config loader, the federation pipeline and the HTTP
surface are defined here. No magic numbers in other modules — import from here.
"""

# ─── Federation document ──────────────────────────────────────────────────────

# Location of the federation document inside the configuration store.
DEFAULT_FEDERATION_CONFIG_KEY: str = "worker-config/blocker-config.json"

# Action applied when the federation document is empty or unparsable.
# Fail-open: with no targets nothing resolves, so every upload proceeds.
DEFAULT_ACTION: str = "warn"

# Actions the policy engine recognises. Anything else fails closed (STOP).
ACTION_BLOCK: str = "block"
ACTION_WARN: str = "warn"

# ─── Remote search ────────────────────────────────────────────────────────────

# One hit is enough to gate an upload.
DEFAULT_RESULT_LIMIT: int = 1

# Upper bound on remote existence queries in flight for one upload event.
DEFAULT_MAX_CONCURRENCY: int = 8

# Total timeout applied by the shared HTTP client (seconds).
DEFAULT_HTTP_TIMEOUT_S: float = 30.0

# Scheme used for targets configured as a bare host name.
DEFAULT_TARGET_SCHEME: str = "https"

# Directory value the remote index uses for files at the repository root.
REPO_ROOT_PATH: str = "."

# Federated search duration above which the timing is logged at WARNING.
SLOW_SEARCH_THRESHOLD_MS: float = 2_000.0

# ─── HTTP client pool ─────────────────────────────────────────────────────────

POOL_MAX_CONNECTIONS: int = 50
POOL_MAX_KEEPALIVE: int = 20
POOL_KEEPALIVE_EXPIRY: float = 30.0  # seconds
