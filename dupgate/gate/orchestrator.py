"""Upload gate orchestrator.

Provides ``evaluate_upload()``: the ONLY entry point for gating an upload.

Pipeline:
  1. Validate the upload identity (repo_key + path). Missing → STOP, no I/O.
  2. Fetch the federation document (store never raises; failure → "").
  3. Parse it (never raises; malformed → empty config, action "warn").
  4. Resolve scope. Empty → PROCEED immediately, zero remote calls.
  5. Federated search over the resolved scope.
  6. Policy decision from (found, action).

INVARIANTS:
  - ``evaluate_upload()`` ALWAYS returns a Decision. It NEVER raises (other
    than cancellation of the calling task) and NEVER returns None.
  - An unexpected exception in steps 2–6 is logged with its traceback and
    converted to a STOP Decision carrying the error message. It is not
    re-raised: the upload gate must always resolve to an outcome.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from dupgate.constants import DEFAULT_FEDERATION_CONFIG_KEY
from dupgate.federation.model import parse_federation_config
from dupgate.federation.scope import resolve_scope
from dupgate.federation.searcher import FederatedSearcher
from dupgate.federation.store import ConfigStore
from dupgate.gate.policy import decide
from dupgate.models.upload import Decision, UploadEvent, UploadStatus
from dupgate.utils.logger import OperationTimer, get_logger

_module_logger = get_logger(__name__)

MISSING_IDENTITY_MESSAGE = "Essential data missing in the request payload."
OUT_OF_SCOPE_MESSAGE = (
    "Artifact path is not in configured search scope for any target. Upload allowed."
)


async def evaluate_upload(
    event: UploadEvent,
    *,
    config_store: ConfigStore,
    searcher: FederatedSearcher,
    config_key: str = DEFAULT_FEDERATION_CONFIG_KEY,
    logger: Optional[structlog.stdlib.BoundLogger] = None,
) -> Decision:
    """Gate one upload against the federation.

    Args:
        event:        Upload identity from the platform payload.
        config_store: Store holding the federation document.
        searcher:     FederatedSearcher wired to the target backends.
        config_key:   Key of the federation document in ``config_store``.
        logger:       Bound logger for this evaluation (evaluation_id etc.).

    Returns:
        Decision with status PROCEED, STOP or WARN. Never None. Never raises.
    """
    log = logger or _module_logger

    # ── Step 1: Validate identity ────────────────────────────────────────────
    if not event.is_processable:
        log.error(
            "Unable to process upload — repo key or path missing",
            repo_key=event.repo_key,
            path=event.path,
        )
        return Decision(status=UploadStatus.STOP, message=MISSING_IDENTITY_MESSAGE, event=event)

    timer = OperationTimer("gate evaluation", log)
    try:
        with timer:
            # ── Step 2+3: Load and parse the federation document ─────────────
            raw_text = await config_store.get_text(config_key)
            parsed = parse_federation_config(raw_text)
            if parsed.diagnostics:
                log.warning(
                    "Federation config entries dropped or coerced",
                    parse_status=parsed.status.value,
                    diagnostics=parsed.diagnostics,
                )
            config = parsed.config
            log.debug(
                "Federation config ready",
                parse_status=parsed.status.value,
                targets=len(config.targets),
                action=config.action,
            )

            # ── Step 4: Resolve scope (fast path when empty) ─────────────────
            matches = resolve_scope(config, event)
            if not matches:
                log.debug("No relevant targets for upload — allowing", directory=event.directory)
                return Decision(
                    status=UploadStatus.PROCEED, message=OUT_OF_SCOPE_MESSAGE, event=event
                )

            # ── Step 5: Federated search ─────────────────────────────────────
            result = await searcher.with_logger(log).search(matches, event)

            # ── Step 6: Policy ───────────────────────────────────────────────
            decision = decide(result.found, config.action, event, result.first_match)

    except asyncio.CancelledError:
        raise
    except Exception as exc:  # noqa: BLE001
        log.error(
            "Gate evaluation failed — stopping upload",
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=True,
        )
        return Decision(
            status=UploadStatus.STOP,
            message=f"Gate evaluation failed: {str(exc) or type(exc).__name__}",
            event=event,
        )

    log.info(
        "Gate decision",
        status=decision.status.value,
        blocking=decision.is_blocking,
        duration_ms=timer.elapsed_ms,
        remote_calls=result.remote_calls,
    )
    return decision
