"""
Conversation data model.

A conversation is an ordered, append-only list of turns. Turn content is
either plain text or a list of typed content blocks: text, a tool-use
request emitted by the model, or a tool result fed back to the model.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional, Union


class Role(str, Enum):
    """Author of a turn."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class TextBlock:
    """Natural-language content."""

    text: str


@dataclass(frozen=True)
class ToolUseBlock:
    """A request from the model to invoke a named tool."""

    name: str
    arguments: dict[str, Any]
    call_id: str


@dataclass(frozen=True)
class ToolResultBlock:
    """The outcome of a tool call, keyed by the originating call_id."""

    call_id: str
    payload: Any
    is_error: bool = False


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock]


@dataclass(frozen=True)
class Turn:
    """One message in a conversation."""

    role: Role
    content: Union[str, list[ContentBlock]]

    @property
    def blocks(self) -> list[ContentBlock]:
        """Content as a list of blocks, wrapping plain text in a TextBlock."""
        if isinstance(self.content, str):
            return [TextBlock(self.content)]
        return list(self.content)

    def text(self) -> str:
        """Concatenated text of all TextBlocks in this turn."""
        return "\n".join(b.text for b in self.blocks if isinstance(b, TextBlock))


@dataclass
class Conversation:
    """
    Ordered, append-only sequence of turns.

    Enforces that every ToolResultBlock references a call_id emitted by a
    ToolUseBlock earlier in the same conversation.
    """

    _turns: list[Turn] = field(default_factory=list)
    _call_ids: set[str] = field(default_factory=set, repr=False)

    def __post_init__(self):
        turns, self._turns = self._turns, []
        for turn in turns:
            self.append(turn)

    @classmethod
    def from_messages(cls, messages: list[dict]) -> "Conversation":
        """
        Build a conversation from UI chat messages.

        Args:
            messages: List of ``{"text": str, "isUser": bool}`` dicts.

        Returns:
            Conversation with ``isUser=True`` mapped to USER, else ASSISTANT.
        """
        return cls(
            [
                Turn(
                    role=Role.USER if msg.get("isUser") else Role.ASSISTANT,
                    content=msg.get("text", ""),
                )
                for msg in messages
            ]
        )

    def append(self, turn: Turn) -> None:
        """Append a turn, validating tool result references."""
        if not isinstance(turn.content, str):
            pending: set[str] = set()
            for block in turn.content:
                if isinstance(block, ToolUseBlock):
                    pending.add(block.call_id)
                elif isinstance(block, ToolResultBlock):
                    if block.call_id not in self._call_ids:
                        raise ValueError(
                            f"Tool result references unknown call_id '{block.call_id}'"
                        )
                elif not isinstance(block, TextBlock):
                    raise TypeError(f"Unsupported content block: {block!r}")
            self._call_ids.update(pending)
        self._turns.append(turn)

    @property
    def turns(self) -> list[Turn]:
        """A copy of the turns in order."""
        return list(self._turns)

    def last(self) -> Optional[Turn]:
        """The most recent turn, if any."""
        return self._turns[-1] if self._turns else None

    def copy(self) -> "Conversation":
        """An independent conversation with the same turns."""
        return Conversation(list(self._turns))

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self._turns)
