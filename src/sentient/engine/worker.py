"""The inference worker and the handle callers use to talk to it.

The worker runs on its own thread and is the only code that touches the
loaded model, the embedding model and the active model profile. Callers
talk to it through three queues:

- requests (bounded): TextInference / Shutdown, processed strictly in order
- responses (bounded): ModelLoaded once, then one NewText per TextInference,
  optionally preceded by NewTextFragment pieces
- commands (unbounded): advisory CANCEL_TEXT_INFERENCE

Known limitation: cancelling only affects remote backends, checked before
and after the HTTP call. A local generation that has started runs to
completion; only ending the process stops it sooner.
"""

import copy
import queue
import threading
import time
from enum import Enum
from typing import Optional

from loguru import logger

from sentient.config.settings import ModelProfile, Settings
from sentient.engine.messages import (
    InferenceContext,
    InferenceResponse,
    ModelLoaded,
    NewText,
    NewTextFragment,
    Shutdown,
    TextInference,
    WorkerCommand,
)
from sentient.engine.prompt import PromptAssembler
from sentient.engine.stops import build_stop_sequences, trim_at_display_names
from sentient.llm.backends import create_backend
from sentient.llm.base import Backend
from sentient.retrieval.embeddings import EmbeddingEngine
from sentient.utils.exceptions import (
    ConfigurationError,
    EmbeddingError,
    EngineBusyError,
    GenerationCancelled,
    LLMInferenceError,
    WorkerStartupError,
)
from sentient.utils.logging import dump_debug_text


class WorkerState(Enum):
    """Lifecycle of the inference worker."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"
    BUSY = "busy"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"
    FAILED = "failed"


class InferenceWorker:
    """
    Serves inference requests one at a time.

    Owns the active backend, the prompt assembler and the optional
    embedding engine. Every TextInference gets exactly one NewText reply,
    with ``None`` text when anything goes wrong.
    """

    def __init__(
        self,
        settings: Settings,
        model_name_or_path: str,
        requests: "queue.Queue",
        responses: "queue.Queue",
        commands: "queue.Queue",
    ):
        self.settings = settings
        self.model_name_or_path = model_name_or_path
        self.requests = requests
        self.responses = responses
        self.commands = commands

        self.state = WorkerState.UNINITIALIZED
        self.startup_error: Optional[BaseException] = None

        self.default_profile: Optional[ModelProfile] = None
        self.active_profile: Optional[ModelProfile] = None
        self.backend: Optional[Backend] = None
        self.embedding_engine: Optional[EmbeddingEngine] = None
        self.assembler: Optional[PromptAssembler] = None
        self._cancelled = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Thread entry point: start up, then serve until Shutdown."""
        try:
            self.start()
        except Exception as e:
            self.startup_error = e
            self.state = WorkerState.FAILED
            logger.exception(f"Inference worker failed to start: {e}")
            return

        self.responses.put(ModelLoaded())
        self.state = WorkerState.READY
        try:
            self.serve()
        finally:
            self.state = WorkerState.SHUTTING_DOWN
            self._release_backend()
            self.state = WorkerState.STOPPED
            logger.info("Inference worker stopped")

    def start(self) -> None:
        """Resolve and load the default model, then the optional embedding model.

        Raises:
            ConfigurationError: If the default model is not configured
            LLMInferenceError: If the default model cannot be loaded
        """
        profile = self.settings.find_model(self.model_name_or_path)
        if profile is None:
            raise ConfigurationError(
                f"Model '{self.model_name_or_path}' is not in the configuration"
            )

        self.default_profile = profile
        self.active_profile = profile
        self.backend = create_backend(profile, self.settings)

        if self.settings.embedding_model is not None:
            try:
                self.embedding_engine = EmbeddingEngine(
                    self.settings.embedding_model,
                    text_to_token_ratio=self.settings.text_to_token_ratio_prediction,
                )
            except EmbeddingError as e:
                logger.error(f"Similar sentence retrieval disabled: {e}")

        self.assembler = PromptAssembler(
            user_name=self.settings.display_name,
            max_new_tokens=self.settings.maximum_new_tokens,
            text_to_token_ratio=self.settings.text_to_token_ratio_prediction,
            embedding_engine=self.embedding_engine,
        )
        logger.info(f"Inference worker ready with model '{profile.name}'")

    def serve(self) -> None:
        """Block on the request queue and answer requests until Shutdown."""
        while True:
            request = self.requests.get()

            if isinstance(request, Shutdown):
                logger.debug("Shutdown requested")
                return

            if not isinstance(request, TextInference):
                logger.error(f"Ignoring unknown request type: {type(request).__name__}")
                continue

            self.state = WorkerState.BUSY
            response = self.handle(request.context)
            self.responses.put(response)
            self.state = WorkerState.READY
            logger.trace("One job-cycle complete in the inference worker")

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def handle(self, context: InferenceContext) -> NewText:
        """Produce the reply for one request. Never raises."""
        self._clear_commands()
        try:
            backend = self._ensure_backend(context.model_override)
            if backend is None:
                return NewText(None, context)

            prompt = self.assembler.assemble(context, self.active_profile)
            dump_debug_text(self.settings.logging.prompt_dump_dir, "last_prompt.txt", prompt)

            stops = None
            if self.settings.stop_on_display_name:
                stops = build_stop_sequences(context, self.settings.display_name)

            on_fragment = None
            if self.settings.stream_fragments and backend.SUPPORTS_STREAMING:
                on_fragment = self._send_fragment

            text = backend.infer(
                prompt,
                context.sampling,
                self.settings.maximum_new_tokens,
                stop_sequences=stops,
                on_fragment=on_fragment,
                should_cancel=self._cancel_requested,
            )
        except GenerationCancelled as e:
            logger.info(f"Text inference cancelled: {e}")
            return NewText(None, context)
        except LLMInferenceError as e:
            logger.error(f"Text inference failed: {e}")
            return NewText(None, context)
        except Exception as e:
            # one bad request must not take the worker down
            logger.exception(f"Unexpected error during text inference: {e}")
            return NewText(None, context)

        dump_debug_text(self.settings.logging.prompt_dump_dir, "last_result.txt", text)

        if self.settings.stop_on_display_name:
            text = trim_at_display_names(text, context, self.settings.display_name)

        return NewText(text, context)

    def _ensure_backend(self, model_override: Optional[str]) -> Optional[Backend]:
        """Make the backend match the requested model, swapping if needed.

        No override means the default model, so an earlier override is undone.
        An unknown model name keeps the active profile. A failed load leaves
        no backend; the next request tries again.
        """
        target_name = model_override or self.default_profile.name
        target = self.settings.find_model(target_name)
        if target is None:
            logger.error(
                f"Model '{target_name}' is not in the configuration; "
                f"staying with '{self.active_profile.name}'"
            )
            target = self.active_profile

        if self.backend is not None and target.name == self.active_profile.name:
            return self.backend

        # free the current model before loading the next one
        self._release_backend()
        self.active_profile = target
        logger.debug(f"Loading a different model for configuration: {target.name}")
        try:
            self.backend = create_backend(target, self.settings)
        except LLMInferenceError as e:
            logger.error(f"Could not switch to model '{target.name}': {e}")
            self.backend = None
        return self.backend

    def _release_backend(self) -> None:
        if self.backend is None:
            return
        try:
            self.backend.close()
        finally:
            self.backend = None

    def _send_fragment(self, text: str) -> None:
        self.responses.put(NewTextFragment(text))

    def _clear_commands(self) -> None:
        # commands sent while idle do not apply to the next request
        self._cancelled = False
        while True:
            try:
                self.commands.get_nowait()
            except queue.Empty:
                return

    def _cancel_requested(self) -> bool:
        while True:
            try:
                command = self.commands.get_nowait()
            except queue.Empty:
                break
            if command is WorkerCommand.CANCEL_TEXT_INFERENCE:
                self._cancelled = True
        return self._cancelled


class InferenceEngine:
    """
    Caller-side handle for a running inference worker.

    Example:
        >>> engine = InferenceEngine.spawn(settings, "kobold")
        >>> engine.wait_until_loaded()
        >>> engine.submit(context)
        >>> response = engine.poll()  # None until the reply arrives
        >>> engine.shutdown()
    """

    def __init__(
        self,
        worker: InferenceWorker,
        thread: threading.Thread,
        requests: "queue.Queue",
        responses: "queue.Queue",
        commands: "queue.Queue",
    ):
        self.worker = worker
        self.thread = thread
        self.requests = requests
        self.responses = responses
        self.commands = commands

    @classmethod
    def spawn(cls, settings: Settings, model_name_or_path: str) -> "InferenceEngine":
        """Create the queues and start the worker thread."""
        requests: "queue.Queue" = queue.Queue(maxsize=settings.request_queue_size)
        responses: "queue.Queue" = queue.Queue(maxsize=settings.response_queue_size)
        commands: "queue.Queue" = queue.Queue()

        worker = InferenceWorker(settings, model_name_or_path, requests, responses, commands)
        thread = threading.Thread(target=worker.run, name="sentient-inference", daemon=True)
        thread.start()
        return cls(worker, thread, requests, responses, commands)

    def wait_until_loaded(self, timeout: Optional[float] = None) -> None:
        """Block until the worker reports ModelLoaded.

        Raises:
            WorkerStartupError: If start-up failed or the timeout expired
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            try:
                response = self.responses.get(timeout=0.1)
            except queue.Empty:
                if not self.thread.is_alive():
                    raise WorkerStartupError(
                        f"Inference worker failed to start: {self.worker.startup_error}"
                    ) from self.worker.startup_error
                if deadline is not None and time.monotonic() >= deadline:
                    raise WorkerStartupError("Timed out waiting for the model to load")
                continue

            if not isinstance(response, ModelLoaded):
                raise WorkerStartupError(
                    f"First worker response was {type(response).__name__}, not ModelLoaded"
                )
            return

    def submit(
        self,
        context: InferenceContext,
        block: bool = True,
        timeout: Optional[float] = None,
    ) -> None:
        """Queue a text inference; the worker gets its own copy of the context.

        Raises:
            EngineBusyError: If the request queue stays full
        """
        request = TextInference(copy.deepcopy(context))
        try:
            self.requests.put(request, block=block, timeout=timeout)
        except queue.Full as e:
            raise EngineBusyError("Inference request queue is full") from e

    def poll(self) -> Optional[InferenceResponse]:
        """Return the next response if one is waiting, else None."""
        try:
            return self.responses.get_nowait()
        except queue.Empty:
            return None

    def receive(self, timeout: Optional[float] = None) -> Optional[InferenceResponse]:
        """Wait up to ``timeout`` seconds for the next response."""
        try:
            return self.responses.get(timeout=timeout)
        except queue.Empty:
            return None

    def cancel(self) -> None:
        """Ask the worker to abandon the current remote generation."""
        self.commands.put(WorkerCommand.CANCEL_TEXT_INFERENCE)

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """Send Shutdown and join the worker thread.

        Returns:
            True if the worker thread has exited
        """
        if self.thread.is_alive():
            try:
                self.requests.put(Shutdown(), timeout=timeout)
            except queue.Full:
                logger.error("Failed to shut down the inference worker: request queue is full")
                return False
        self.thread.join(timeout)
        return not self.thread.is_alive()
