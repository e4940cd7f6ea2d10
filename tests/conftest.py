"""Pytest configuration and fixtures for Sentient tests."""

import tempfile
import threading
import time
from pathlib import Path
from typing import Generator, List, Set
from unittest.mock import patch

import numpy as np
import pytest

from sentient.config.settings import (
    LoggingSettings,
    ModelProfile,
    SamplingProfile,
    Settings,
)
from sentient.core.models import Character, Conversation, Turn
from sentient.llm.base import Backend
from sentient.utils.exceptions import GenerationCancelled, LLMInferenceError, ModelLoadError


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def alice() -> Character:
    return Character(
        name="Alice",
        description="<|character_name|> is a lighthouse keeper who talks to <|user_name|>.",
        context="A stormy night at the lighthouse.",
        greeting="<|character_name|>: Welcome, <|user_name|>.",
    )


@pytest.fixture
def bob() -> Character:
    return Character(name="Bob", description="Bob is Alice's brother.")


@pytest.fixture
def sampling() -> SamplingProfile:
    return SamplingProfile(name="balanced", temperature=0.7, top_k=40, top_p=0.9)


@pytest.fixture
def remote_profile() -> ModelProfile:
    return ModelProfile(
        name="kobold",
        remote_host="http://kobold.local:5001",
        context_window_tokens=2048,
    )


@pytest.fixture
def test_settings(temp_dir: Path) -> Settings:
    """Create test settings with two remote models and no embedding model."""
    return Settings(
        display_name="USER",
        maximum_new_tokens=150,
        models=[
            ModelProfile(name="remote-a", remote_host="http://a.local:5001"),
            ModelProfile(name="remote-b", remote_host="http://b.local:5001"),
        ],
        parameters=[SamplingProfile(name="balanced", temperature=0.7)],
        logging=LoggingSettings(
            level="DEBUG", output_file=str(temp_dir / "test.log"), format="text"
        ),
    )


def _make_conversation(*turns) -> Conversation:
    return Conversation(turns=[Turn.from_text(speaker, text) for speaker, text in turns])


@pytest.fixture
def make_conversation():
    """Build a conversation from (speaker, text) pairs."""
    return _make_conversation


class FakeEncoder:
    """Bag-of-words stand-in for a SentenceTransformer.

    Each vector counts the occurrences of a fixed vocabulary, so similarity
    between texts is predictable.
    """

    VOCABULARY = ["lighthouse", "cheese", "bread", "night", "sea"]

    def __init__(self):
        self.calls: List[List[str]] = []

    def encode(self, texts: List[str]) -> np.ndarray:
        self.calls.append(list(texts))
        return np.array(
            [[float(text.lower().count(word)) for word in self.VOCABULARY] for text in texts]
        )


@pytest.fixture
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()


class FakeBackend(Backend):
    """Backend that records what it was asked and answers with a canned reply.

    Prompts containing FAIL raise LLMInferenceError and prompts containing
    CRASH raise a bare RuntimeError.
    """

    KIND = "remote"
    SUPPORTS_STREAMING = True
    SUPPORTS_CANCEL = True

    def __init__(self, profile, reply: str = " Sure thing.\nUSER: that's me talking"):
        self.profile = profile
        self.reply = reply
        self.prompts: List[str] = []
        self.stop_sequences: List[List[str]] = []
        self.closed = False
        self.started = threading.Event()
        self.wait_for_cancel = False

    def infer(
        self,
        prompt,
        sampling,
        max_new_tokens,
        stop_sequences=None,
        on_fragment=None,
        should_cancel=None,
    ):
        self.prompts.append(prompt)
        self.stop_sequences.append(stop_sequences)
        if should_cancel is not None and should_cancel():
            raise GenerationCancelled("cancelled before start")
        self.started.set()

        if self.wait_for_cancel:
            deadline = time.monotonic() + 5
            while not should_cancel():
                if time.monotonic() > deadline:
                    raise LLMInferenceError("cancel never arrived")
                time.sleep(0.01)
            raise GenerationCancelled("cancelled")

        if "FAIL" in prompt:
            raise LLMInferenceError("backend exploded")
        if "CRASH" in prompt:
            raise RuntimeError("unexpected failure")

        if on_fragment is not None:
            on_fragment(self.reply[:6])
            on_fragment(self.reply[6:])
        return self.reply

    def close(self):
        self.closed = True


class BackendFactory:
    """Stands in for create_backend and remembers every backend it built."""

    def __init__(self):
        self.created: List[FakeBackend] = []
        self.fail_for: Set[str] = set()
        self.wait_for_cancel = False

    def __call__(self, profile, settings):
        if profile.name in self.fail_for:
            raise ModelLoadError(f"Failed to load model {profile.name}")
        backend = FakeBackend(profile)
        backend.wait_for_cancel = self.wait_for_cancel
        self.created.append(backend)
        return backend


@pytest.fixture
def backend_factory() -> Generator[BackendFactory, None, None]:
    factory = BackendFactory()
    with patch("sentient.engine.worker.create_backend", side_effect=factory):
        yield factory
