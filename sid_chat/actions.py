"""
Action signal decoding.

The model can answer with a structured directive instead of chat text, e.g.::

    {"action": "CHANGE_DATABASE", "database": "sales", "message": "Switched"}

``decode`` recognizes such payloads. Anything else is ordinary chat text.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Union

logger = logging.getLogger(__name__)

CHANGE_DATABASE = "CHANGE_DATABASE"

# ```json ... ``` wrapper some models put around structured output
_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


@dataclass(frozen=True)
class ChangeDatabase:
    """Switch the UI's active database."""

    database: str
    message: str

    @property
    def display_message(self) -> str:
        """The message to show the user; a stock confirmation if none was given."""
        return self.message or f"Switched to database '{self.database}'."


ActionSignal = Union[ChangeDatabase]


def decode(text: str) -> Optional[ActionSignal]:
    """
    Decode an action signal from model output.

    Never raises: unparsable or unrecognized input yields None.

    Args:
        text: Model output text.

    Returns:
        The decoded ActionSignal, or None if the text is not an action.
    """
    if not isinstance(text, str):
        return None

    candidate = text.strip()
    fenced = _CODE_FENCE.match(candidate)
    if fenced:
        candidate = fenced.group(1)

    try:
        data = json.loads(candidate)
    except (json.JSONDecodeError, TypeError) as e:
        logger.debug("Not an action signal (%s): %.80s", e, candidate)
        return None

    if not isinstance(data, dict):
        logger.debug("Not an action signal: JSON is not an object")
        return None

    if data.get("action") == CHANGE_DATABASE:
        database = data.get("database")
        message = data.get("message", "")
        if isinstance(database, str) and database and isinstance(message, str):
            return ChangeDatabase(database=database, message=message)

    logger.debug("Not an action signal: unrecognized shape %s", sorted(data))
    return None


def decode_first(segments: Iterable[str]) -> Optional[ActionSignal]:
    """Decode the first segment that carries an action signal."""
    for segment in segments:
        signal = decode(segment)
        if signal is not None:
            return signal
    return None


def to_flags(signal: Optional[ActionSignal]) -> dict:
    """
    Translate a side effect into the UI flags shape.

    Returns:
        ``{"databaseChanged": {"value": bool, "database"?: str}}``
    """
    if isinstance(signal, ChangeDatabase):
        return {"databaseChanged": {"value": True, "database": signal.database}}
    return {"databaseChanged": {"value": False}}
