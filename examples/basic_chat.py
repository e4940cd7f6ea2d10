#!/usr/bin/env python3
"""Basic example: one reply from a character through the inference engine.

Loads ./config.toml (or ~/.config/sentient/config.toml), starts the
worker with the first configured model and asks the character to answer
a single message.
"""

import sys

from sentient.config.settings import SamplingProfile, load_settings
from sentient.core.models import Character, Conversation, Turn
from sentient.engine.messages import InferenceContext, NewText, NewTextFragment
from sentient.engine.worker import InferenceEngine
from sentient.utils.exceptions import WorkerStartupError


def main():
    """Run basic chat example."""
    print("=== Basic Sentient Chat Example ===\n")

    settings = load_settings()
    if not settings.models:
        print("No models configured. Copy config.example.toml to config.toml first.")
        return 1

    model_name = settings.models[0].name
    sampling = settings.parameters[0] if settings.parameters else SamplingProfile(name="default")

    character = Character(
        name="Alice",
        description="<|character_name|> keeps the lighthouse and likes talking to <|user_name|>.",
        context="A stormy night at the lighthouse.",
        greeting="<|character_name|>: Come in out of the rain, <|user_name|>!",
    )
    conversation = Conversation.from_greeting(character, settings.display_name)
    conversation.append(Turn.from_text(settings.display_name, "How long have you lived here?"))

    print(f"Loading model: {model_name}")
    engine = InferenceEngine.spawn(settings, model_name)
    try:
        engine.wait_until_loaded()
    except WorkerStartupError as e:
        print(f"Failed to load model: {e}")
        return 1

    print("Model loaded\n")
    for turn in conversation:
        print(turn.render())

    engine.submit(
        InferenceContext(
            character=character,
            conversation_owner=character,
            conversation=conversation,
            sampling=sampling,
        )
    )

    print(f"{character.name}:", end="", flush=True)
    streamed = False
    while True:
        response = engine.receive(timeout=1.0)
        if isinstance(response, NewTextFragment):
            print(response.text, end="", flush=True)
            streamed = True
        elif isinstance(response, NewText):
            if not streamed:
                print(response.text if response.text is not None else " <no reply>", end="")
            print()
            break

    engine.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
