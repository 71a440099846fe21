"""
Serialization boundary between conversation records and the session store.

The store keeps one JSON array of turns per session. Nothing else in the
service knows about that encoding.
"""

import json
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from libs.common.errors import HistorySerializationError
from libs.models.conversation import Turn

_TURN_LIST = TypeAdapter(List[Turn])


def dump_history(turns: List[Turn]) -> str:
    """Encode turns as a JSON array using wire (camelCase) field names."""
    return json.dumps([turn.to_wire() for turn in turns], ensure_ascii=False)


def load_history(raw: Optional[str]) -> List[Turn]:
    """
    Decode a stored history blob.

    Args:
        raw: JSON text from the store, or None when the key does not exist

    Returns:
        Turns in stored (chronological) order; empty for a missing key

    Raises:
        HistorySerializationError: If the blob is not a JSON array of turns
    """
    if raw is None or raw == "":
        return []
    try:
        return _TURN_LIST.validate_json(raw)
    except ValidationError as e:
        raise HistorySerializationError(f"Stored history is not a list of turns: {e.error_count()} errors") from e
