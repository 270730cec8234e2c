"""Upload gate — policy decision and orchestration.

Public API:
    evaluate_upload — the only entry point for gating an upload
    decide          — (found, action) → Decision
"""
from dupgate.gate.orchestrator import evaluate_upload
from dupgate.gate.policy import decide

__all__ = ["decide", "evaluate_upload"]
