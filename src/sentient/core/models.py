"""Core conversation data structures."""

import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

import numpy as np

from sentient.core.constants import CHARACTER_NAME_TAG, DEFAULT_SPEAKER_NAME, USER_NAME_TAG
from sentient.core.memories import load_memory_file
from sentient.utils.exceptions import ConfigurationError

# Pulls the speaker name off the front of a greeting line ("Alice: hi").
SPEAKER_PREFIX_RE = re.compile(r"^([\w\-]+):")


@dataclass
class Character:
    """The parts of a character definition the engine reads."""

    name: str
    description: str = ""
    context: str = ""
    greeting: str = ""

    def expand_tags(self, text: str, user_name: str) -> str:
        """Replace the character and user name tags in free text."""
        return text.replace(CHARACTER_NAME_TAG, self.name).replace(USER_NAME_TAG, user_name)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Character":
        """Load a character from a TOML file with name, description, context and greeting."""
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
            return cls(
                name=data["name"],
                description=data.get("description", ""),
                context=data.get("context", ""),
                greeting=data.get("greeting", ""),
            )
        except (OSError, tomllib.TOMLDecodeError, KeyError) as e:
            raise ConfigurationError(f"Could not load character file {path}: {e}") from e


@dataclass
class Turn:
    """One speaker's contribution to a conversation, possibly multi-line.

    Embeddings are only meaningful for the text they were computed from, so
    they are stored together with that text and ignored once ``lines`` change.
    """

    speaker: str
    lines: List[str] = field(default_factory=list)
    similarity_embeddings: List[np.ndarray] = field(
        default_factory=list, repr=False, compare=False
    )
    _embedded_text: Optional[str] = field(
        default=None, init=False, repr=False, compare=False
    )

    @classmethod
    def from_text(cls, speaker: str, text: str) -> "Turn":
        """Create a turn, splitting the text on newlines."""
        return cls(speaker=speaker, lines=text.splitlines())

    def text(self) -> str:
        """The turn's lines joined by newlines, without the speaker."""
        return "\n".join(self.lines)

    def render(self) -> str:
        """The turn as it appears in a prompt: ``"{speaker}: {text}"``."""
        return f"{self.speaker}: {self.text()}"

    def add_to_last(self, text: str) -> None:
        """Append text to the last line, splitting any new lines it brings."""
        if not self.lines:
            self.lines.append(text)
            return
        last = self.lines.pop() + text
        self.lines.extend(last.split("\n"))

    def replace_text(self, text: str) -> None:
        self.lines = text.split("\n") if text else []

    def set_embeddings(self, embeddings: List[np.ndarray]) -> None:
        """Store embeddings derived from the turn's current text."""
        self.similarity_embeddings = list(embeddings)
        self._embedded_text = self.render()

    def has_current_embeddings(self) -> bool:
        return self._embedded_text is not None and self._embedded_text == self.render()

    def current_embeddings(self) -> List[np.ndarray]:
        """Embeddings if they still match the text, otherwise an empty list."""
        if self.has_current_embeddings():
            return self.similarity_embeddings
        return []


@dataclass
class Conversation:
    """Ordered turns (index 0 is oldest) plus the scene state used in prompts."""

    turns: List[Turn] = field(default_factory=list)
    current_context: str = ""
    user_description: Optional[str] = None
    # key phrase -> remembered snippets, merged from all loaded memory files
    memories: Dict[str, List[str]] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self.turns)

    def __getitem__(self, index: int) -> Turn:
        return self.turns[index]

    def append(self, turn: Turn) -> None:
        self.turns.append(turn)

    def pop(self) -> Optional[Turn]:
        return self.turns.pop() if self.turns else None

    def last(self) -> Optional[Turn]:
        return self.turns[-1] if self.turns else None

    def add_memory(self, key: str, value: str) -> None:
        self.memories.setdefault(key, []).append(value)

    def load_memories(self, paths: List[Union[str, Path]]) -> None:
        """Merge the memories from each JSON memory file into this conversation."""
        for path in paths:
            for memory in load_memory_file(path):
                self.add_memory(memory.key, memory.value)

    @classmethod
    def from_greeting(cls, character: Character, user_name: str) -> "Conversation":
        """Start a conversation from a character's greeting.

        Each greeting line becomes a turn; a leading ``Name:`` selects the
        speaker, otherwise the line is attributed to an unknown speaker.
        """
        turns = []
        for line in character.greeting.splitlines():
            line = character.expand_tags(line, user_name)
            match = SPEAKER_PREFIX_RE.match(line)
            if match:
                speaker = match.group(1)
                turns.append(Turn.from_text(speaker, line[match.end():].lstrip(" ")))
            else:
                turns.append(Turn.from_text(DEFAULT_SPEAKER_NAME, line))
        return cls(turns=turns, current_context=character.context)
