"""Key/value memory files attached to a conversation.

A memory file is JSON of the form::

    {"memories": [{"key": "the lighthouse", "value": "Alice grew up near it."}]}

When a key shows up in recent turns, its value is offered to the prompt
through the ``<|memory_matches|>`` tag.
"""

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import List, Union

from sentient.utils.exceptions import ConfigurationError


@dataclass
class Memory:
    """A single remembered snippet keyed by the phrase that recalls it."""

    key: str
    value: str


def load_memory_file(path: Union[str, Path]) -> List[Memory]:
    """Load memories from a JSON memory file.

    Raises:
        ConfigurationError: If the file cannot be read or has the wrong shape
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return [Memory(key=m["key"], value=m["value"]) for m in data.get("memories", [])]
    except (OSError, json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
        raise ConfigurationError(f"Could not load memory file {path}: {e}") from e


def save_memory_file(path: Union[str, Path], memories: List[Memory]) -> None:
    """Write memories out as a pretty-printed JSON memory file."""
    payload = {"memories": [asdict(m) for m in memories]}
    Path(path).write_text(json.dumps(payload, indent=2), encoding="utf-8")
