"""Blocking client for a KoboldAI-compatible ``/api/v1/generate`` endpoint.

The worker thread is dedicated to one inference at a time, so the HTTP
call blocks just like in-process generation does.
"""

from typing import Any, Callable, Dict, List, Optional

import httpx
from loguru import logger

from sentient.config.constants import DEFAULT_REMOTE_TIMEOUT_S
from sentient.config.settings import SamplingProfile
from sentient.llm.base import Backend
from sentient.llm.sampling import kobold_sampling_fields
from sentient.utils.exceptions import GenerationCancelled, LLMInferenceError

GENERATE_PATH = "/api/v1/generate"


class KoboldBackend(Backend):
    """
    Remote generation through the KoboldAI text generation API.

    Non-200 responses, transport errors and empty result lists all raise
    LLMInferenceError; the worker turns them into a failed (None) reply.
    """

    KIND = "remote"
    SUPPORTS_STREAMING = False
    SUPPORTS_CANCEL = True

    def __init__(
        self,
        host: str,
        context_window_tokens: int,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            host: Server base URL, e.g. ``http://localhost:5001``
            context_window_tokens: Sent as ``max_context_length``
            timeout_s: Request timeout in seconds (default two hours)
            transport: Optional httpx transport, used by tests
        """
        if not host:
            raise ValueError("Remote host is required")
        self.endpoint = host.rstrip("/")
        self.context_window_tokens = context_window_tokens
        self.timeout_s = timeout_s or DEFAULT_REMOTE_TIMEOUT_S
        self.client = httpx.Client(
            timeout=self.timeout_s,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @property
    def generate_url(self) -> str:
        return f"{self.endpoint}{GENERATE_PATH}"

    def build_request_body(
        self,
        prompt: str,
        sampling: SamplingProfile,
        max_new_tokens: int,
        stop_sequences: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Build the JSON body for a generate call."""
        body: Dict[str, Any] = {
            "prompt": prompt,
            "max_context_length": self.context_window_tokens,
            "max_length": max_new_tokens,
        }
        body.update(kobold_sampling_fields(sampling))
        body["trim_stop"] = True
        if stop_sequences:
            body["stop_sequence"] = list(stop_sequences)
        return body

    def infer(
        self,
        prompt: str,
        sampling: SamplingProfile,
        max_new_tokens: int,
        stop_sequences: Optional[List[str]] = None,
        on_fragment: Optional[Callable[[str], None]] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> str:
        """POST the prompt and return the first result's text."""
        if should_cancel is not None and should_cancel():
            raise GenerationCancelled("Cancelled before the request was sent")

        body = self.build_request_body(prompt, sampling, max_new_tokens, stop_sequences)
        try:
            response = self.client.post(self.generate_url, json=body)
        except httpx.TimeoutException as e:
            raise LLMInferenceError(f"KoboldAPI: request timed out after {self.timeout_s}s") from e
        except httpx.HTTPError as e:
            raise LLMInferenceError(f"KoboldAPI: could not reach {self.endpoint}: {e}") from e

        if should_cancel is not None and should_cancel():
            raise GenerationCancelled("Cancelled while the request was in flight")

        if response.status_code != 200:
            raise LLMInferenceError(
                f"KoboldAPI: failed to generate text. Status: {response.status_code}"
            )

        try:
            results = response.json().get("results") or []
            text = results[0]["text"] if results else None
        except (ValueError, AttributeError, KeyError, TypeError) as e:
            raise LLMInferenceError(f"KoboldAPI: malformed response body: {e}") from e

        if text is None:
            raise LLMInferenceError("KoboldAPI: empty result was returned")

        logger.debug(f"KoboldAPI returned {len(text)} characters")
        return text

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()
