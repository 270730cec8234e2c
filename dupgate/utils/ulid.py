"""ULID generation utility for DupGate.

Provides a single `generate_ulid()` function that returns a 26-character ULID
(Universally Unique Lexicographically Sortable Identifier) used as:
  - evaluation_id for every gate evaluation (bound into all pipeline logs)
  - X-DupGate-Evaluation-ID response header value

Uses the `python-ulid` library — do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: Crockford Base32 ULID, exactly 26 chars.

    Example::

        evaluation_id = generate_ulid()
        assert len(evaluation_id) == 26
    """
    return str(ULID())
