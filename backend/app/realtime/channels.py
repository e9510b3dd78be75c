"""Chat channel naming shared by publishers and subscribers.

The name is keyed by the unordered pair of role-profile ids, so the server and
any client derive the same channel without agreeing on which id is the coach.
The ``private-`` prefix marks the channel as requiring a signed grant.
"""

import re

CHAT_CHANNEL_PREFIX = "private-chat-"
NEW_MESSAGE_EVENT = "new-message"

_CHAT_CHANNEL_RE = re.compile(r"^private-chat-(\d+)-(\d+)$")


def chat_channel_name(profile_id_a: int, profile_id_b: int) -> str:
    low, high = sorted((profile_id_a, profile_id_b))
    return f"{CHAT_CHANNEL_PREFIX}{low}-{high}"


def parse_chat_channel(channel_name: str) -> tuple[int, int] | None:
    """Return the two profile ids embedded in a chat channel name, or None."""
    match = _CHAT_CHANNEL_RE.fullmatch(channel_name or "")
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))
