"""Upload gate HTTP response builders.

Provides the factory that turns a Decision into the JSON body the platform's
before-upload hook expects:

    {
      "status":   "UPLOAD_PROCEED" | "UPLOAD_STOP" | "UPLOAD_WARN",
      "message":  "<human-readable reason>",
      "identity": {"repoKey": "<repo>", "path": "<path>"},
      "headers":  {}
    }

Invariants:
  - ``identity`` is the upload identity exactly as received — never rewritten.
  - ``headers`` is always an empty mapping; it is reserved for collaborators
    that annotate responses.
  - The HTTP status code is 200 for every decided gate, STOP included. A STOP
    is a policy outcome, not a transport failure.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi.responses import JSONResponse

from dupgate.models.upload import Decision

#: Response header carrying the evaluation ULID (correlates with logs).
EVALUATION_ID_HEADER = "X-DupGate-Evaluation-ID"


def gate_response_body(decision: Decision) -> dict[str, Any]:
    """Serialise a Decision into the gate response contract."""
    return {
        "status": decision.status.value,
        "message": decision.message,
        "identity": {
            "repoKey": decision.event.repo_key,
            "path": decision.event.path,
        },
        "headers": {},
    }


def build_gate_response(
    decision: Decision,
    evaluation_id: Optional[str] = None,
) -> JSONResponse:
    """Build the HTTP 200 gate response for a Decision.

    Args:
        decision:      Outcome of ``evaluate_upload()``.
        evaluation_id: ULID of this evaluation; set as ``X-DupGate-Evaluation-ID``
                       when provided.

    Returns:
        JSONResponse with status_code=200.
    """
    response = JSONResponse(status_code=200, content=gate_response_body(decision))
    if evaluation_id:
        response.headers[EVALUATION_ID_HEADER] = evaluation_id
    return response
