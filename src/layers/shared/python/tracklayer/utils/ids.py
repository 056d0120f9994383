"""Identifier generation.

All identifiers are ULIDs, so they sort lexically by creation time.
"""

import base64
import re
import time

from ulid import ULID

_DEDUP_STRIP = re.compile(r"[/+=]")


def generate_id() -> str:
    """Generate a new ULID string."""
    return str(ULID())


def generate_visitor_id() -> str:
    return f"visitor_{generate_id()}"


def generate_session_id() -> str:
    return f"session_{generate_id()}"


def generate_profile_id() -> str:
    return f"profile_{generate_id()}"


def generate_event_id() -> str:
    return f"event_{generate_id()}"


def generate_experience_id() -> str:
    return f"experience_{generate_id()}"


def generate_dedup_id(
    visitor_id: str,
    action: str,
    experience_id: str | None = None,
    timestamp: str | None = None,
) -> str:
    """Derive the dedup key for an event.

    The key includes the event timestamp, so only a literal re-submission
    (same visitor, action, experience and timestamp) collides.

    Args:
        visitor_id: Visitor the event belongs to.
        action: Event action.
        experience_id: Experience the event happened in, if any.
        timestamp: Event timestamp; current epoch ms when omitted.

    Returns:
        Lower-cased base64 key with ``/``, ``+`` and ``=`` removed.
    """
    key = "|".join(
        [
            visitor_id,
            action,
            experience_id or "no_experience",
            timestamp or str(int(time.time() * 1000)),
        ]
    )
    encoded = base64.b64encode(key.encode("utf-8")).decode("ascii")
    return _DEDUP_STRIP.sub("", encoded).lower()
