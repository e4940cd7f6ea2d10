"""Stopping generation before the model speaks for another participant."""

from typing import List

from loguru import logger

from sentient.engine.messages import InferenceContext


def _stop_names(context: InferenceContext, user_name: str) -> List[str]:
    names = [user_name, context.character.name]
    # the owner is not listed among the other participants when a guest speaks
    if context.conversation_owner.name.lower() != context.character.name.lower():
        names.append(context.conversation_owner.name)
    names.extend(c.name for c, _ in context.other_participants)

    unique: List[str] = []
    for name in names:
        if name and name not in unique:
            unique.append(name)
    return unique


def build_stop_sequences(context: InferenceContext, user_name: str) -> List[str]:
    """Stop sequences of the form ``"{name}: "`` for everyone in the conversation."""
    return [f"{name}: " for name in _stop_names(context, user_name)]


def trim_at_display_names(text: str, context: InferenceContext, user_name: str) -> str:
    """Cut ``text`` at the earliest ``"{name}:"`` of any participant.

    Applying it to already-trimmed text changes nothing.
    """
    earliest = None
    for name in _stop_names(context, user_name):
        found = text.find(f"{name}:")
        if found != -1 and (earliest is None or found < earliest):
            earliest = found

    if earliest is None:
        return text

    logger.debug(f"Splitting off response at {earliest}")
    return text[:earliest]
