"""Gate policy — maps a search finding and the configured action to a Decision.

    found  | action        | status
    -------+---------------+--------
    False  | any           | PROCEED
    True   | "block"       | STOP
    True   | "warn"        | WARN
    True   | other / unset | STOP (fail-closed, message flags the bad action)

An unknown action only matters once a duplicate has been found: a broken
policy setting must never let a duplicate through silently.
"""

from __future__ import annotations

from typing import Optional

from dupgate.constants import ACTION_BLOCK, ACTION_WARN
from dupgate.models.upload import Decision, FoundItem, UploadEvent, UploadStatus
from dupgate.utils.logger import get_logger

logger = get_logger(__name__)

#: Status applied when a duplicate is found, per recognised action.
STATUS_FOR_ACTION: dict[str, UploadStatus] = {
    ACTION_BLOCK: UploadStatus.STOP,
    ACTION_WARN: UploadStatus.WARN,
}


def duplicate_message(event: UploadEvent, match: Optional[FoundItem]) -> str:
    if match is None:
        return "Duplicate artifact found. Upload will not proceed."
    return f"Artifact matching {event.path} already exists in {match.location}"


def decide(
    found: bool,
    action: Optional[str],
    event: UploadEvent,
    match: Optional[FoundItem] = None,
) -> Decision:
    """Return the gate Decision for a completed search."""
    if not found:
        return Decision(
            status=UploadStatus.PROCEED,
            message=f"Artifact {event.path} can be uploaded. No duplicates found.",
            event=event,
        )

    status = STATUS_FOR_ACTION.get(action) if action is not None else None
    if status is not None:
        message = duplicate_message(event, match)
        return Decision(status=status, message=message, event=event, match=match)

    logger.warning("Unknown action in federation config — defaulting to block", action=action)
    where = f" at {match.location}" if match is not None else ""
    return Decision(
        status=UploadStatus.STOP,
        message=(
            f"Unknown action {action!r} in federation config; duplicate found{where}. "
            "Upload will not proceed."
        ),
        event=event,
        match=match,
    )
