"""Upload gate data contracts.

Defines the values that flow through the gate pipeline:

  - UploadEvent  — identity of the artifact being uploaded (repo key + path)
  - FoundItem    — one existing artifact reported by a federation target
  - UploadStatus — the three gate outcomes
  - Decision     — the gate outcome plus a human-readable message

All types are immutable. A Decision always echoes the upload identity it was
computed for, unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from dupgate.constants import REPO_ROOT_PATH


class UploadStatus(str, Enum):
    """Gate outcome returned to the platform."""

    PROCEED = "UPLOAD_PROCEED"
    STOP = "UPLOAD_STOP"
    WARN = "UPLOAD_WARN"


@dataclass(frozen=True)
class UploadEvent:
    """Identity of an artifact about to be uploaded.

    Fields:
        repo_key: Repository the artifact is being uploaded to.
        path:     Slash-separated path inside the repository; the last segment
                  is the file name.
    """

    repo_key: str
    path: str

    @property
    def is_processable(self) -> bool:
        """True when both repo_key and path are non-empty."""
        return bool(self.repo_key) and bool(self.path)

    @property
    def directory(self) -> str:
        """Path with the trailing file segment stripped ("" for root-level files)."""
        segments = self.path.split("/") if self.path else []
        if len(segments) <= 1:
            return ""
        return "/".join(segments[:-1])

    @property
    def file_name(self) -> str:
        """Last path segment ("" for an empty path)."""
        if not self.path:
            return ""
        return self.path.split("/")[-1]

    @classmethod
    def from_payload(cls, payload: Any) -> "UploadEvent":
        """Extract the upload identity from a platform before-upload payload.

        Expected shape: ``{"metadata": {"repoPath": {"key": ..., "path": ...}}}``.
        Missing or mistyped fields become empty strings so the caller can reject
        the event through ``is_processable`` instead of catching exceptions.
        """
        metadata = payload.get("metadata") if isinstance(payload, dict) else None
        repo_path = metadata.get("repoPath") if isinstance(metadata, dict) else None
        if not isinstance(repo_path, dict):
            return cls(repo_key="", path="")
        key = repo_path.get("key")
        path = repo_path.get("path")
        return cls(
            repo_key=key if isinstance(key, str) else "",
            path=path if isinstance(path, str) else "",
        )


@dataclass(frozen=True)
class FoundItem:
    """An existing artifact reported by a federation target."""

    target_url: str
    repo: str
    path: str  # directory inside repo; "." for the repository root
    name: str

    @property
    def full_path(self) -> str:
        if not self.path or self.path == REPO_ROOT_PATH:
            return self.name
        return f"{self.path}/{self.name}"

    @property
    def location(self) -> str:
        """``<target>:<repo>/<full path>`` — used in decision messages."""
        return f"{self.target_url}:{self.repo}/{self.full_path}"


@dataclass(frozen=True)
class Decision:
    """Outcome of one gate evaluation."""

    status: UploadStatus
    message: str
    event: UploadEvent
    match: Optional[FoundItem] = None

    @property
    def is_blocking(self) -> bool:
        return self.status == UploadStatus.STOP
