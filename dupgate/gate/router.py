"""Before-upload gate endpoint.

    POST /v1/before-upload
    {"metadata": {"repoPath": {"key": "libs-release", "path": "org/app/1.0/app.jar"}}}

Every request gets a fresh evaluation: a new ULID, a logger bound to the
evaluation id and upload identity, and a federation document re-read from the
store.

The endpoint answers HTTP 200 with the gate JSON for every decided outcome,
STOP included. A body that is not JSON is treated like a payload with missing
identity (STOP), never as a 4xx.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, Request, Response

from dupgate.config import Config
from dupgate.gate.orchestrator import evaluate_upload
from dupgate.models.response import build_gate_response
from dupgate.models.upload import UploadEvent
from dupgate.utils.logger import evaluation_logger
from dupgate.utils.ulid import generate_ulid

router = APIRouter(tags=["gate"])


@router.post("/v1/before-upload")
async def before_upload(request: Request) -> Response:
    """Gate an upload against the federation."""
    evaluation_id = generate_ulid()
    try:
        payload = json.loads(await request.body() or b"null")
    except ValueError:
        payload = None
    event = UploadEvent.from_payload(payload)

    config: Config = request.app.state.config
    decision = await evaluate_upload(
        event,
        config_store=request.app.state.config_store,
        searcher=request.app.state.searcher,
        config_key=config.store.key,
        logger=evaluation_logger(evaluation_id, event.repo_key, event.path),
    )
    return build_gate_response(decision, evaluation_id=evaluation_id)
