"""Messages exchanged with the inference worker.

Requests flow caller -> worker, responses flow worker -> caller, and
commands travel on a separate advisory side-channel.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

from sentient.config.settings import SamplingProfile
from sentient.core.models import Character, Conversation


@dataclass
class InferenceContext:
    """Everything the worker needs to produce one reply.

    ``character`` is the one speaking this time. It must be the conversation
    owner or one of ``other_participants``; the engine never invents a speaker.
    """

    character: Character
    conversation_owner: Character
    conversation: Conversation
    sampling: SamplingProfile
    # model profile name to use instead of the worker's default
    model_override: Optional[str] = None
    other_participants: List[Tuple[Character, Optional[str]]] = field(default_factory=list)
    # keep writing the newest turn instead of starting a new one
    continue_last_turn: bool = False

    def __post_init__(self) -> None:
        known = [self.conversation_owner.name] + [c.name for c, _ in self.other_participants]
        if self.character.name not in known:
            raise ValueError(
                f"Speaking character '{self.character.name}' is not a participant "
                f"of this conversation ({', '.join(known)})"
            )

    def participant_names(self) -> List[str]:
        """Speaking character, owner and other participants, without duplicates."""
        names: List[str] = []
        for name in [self.character.name, self.conversation_owner.name] + [
            c.name for c, _ in self.other_participants
        ]:
            if name not in names:
                names.append(name)
        return names


@dataclass
class TextInference:
    """Request a reply for the given context."""

    context: InferenceContext


@dataclass(frozen=True)
class Shutdown:
    """Ask the worker to exit its loop."""


InferenceRequest = Union[TextInference, Shutdown]


@dataclass
class NewText:
    """The result of one TextInference; ``text`` is None when generation failed."""

    text: Optional[str]
    context: InferenceContext


@dataclass(frozen=True)
class NewTextFragment:
    """A streamed piece of the reply currently being generated."""

    text: str


@dataclass(frozen=True)
class ModelLoaded:
    """Sent once when the worker is ready to take requests."""


InferenceResponse = Union[NewText, NewTextFragment, ModelLoaded]


class WorkerCommand(Enum):
    """Out-of-band, advisory commands."""

    CANCEL_TEXT_INFERENCE = "cancel_text_inference"
