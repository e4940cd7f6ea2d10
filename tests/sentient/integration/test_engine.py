"""Integration tests for the threaded inference engine."""

import pytest

from sentient.engine.messages import InferenceContext, ModelLoaded, NewText, NewTextFragment
from sentient.engine.worker import InferenceEngine, WorkerState
from sentient.utils.exceptions import EngineBusyError, WorkerStartupError

TIMEOUT = 5.0


@pytest.fixture
def make_context(alice, sampling, make_conversation):
    def _make(text: str, **kwargs) -> InferenceContext:
        return InferenceContext(
            character=alice,
            conversation_owner=alice,
            conversation=make_conversation(("Alice", "Welcome."), ("USER", text)),
            sampling=sampling,
            **kwargs,
        )

    return _make


@pytest.fixture
def engine(test_settings, backend_factory):
    engine = InferenceEngine.spawn(test_settings, "remote-a")
    engine.wait_until_loaded(timeout=TIMEOUT)
    yield engine
    engine.shutdown(timeout=TIMEOUT)


def next_text(engine: InferenceEngine) -> NewText:
    """Skip fragments and return the next NewText."""
    while True:
        response = engine.receive(timeout=TIMEOUT)
        assert response is not None, "worker did not answer in time"
        if isinstance(response, NewText):
            return response


class TestLifecycle:
    """Tests for spawning and stopping the worker."""

    def test_model_loaded_is_first_response(self, test_settings, backend_factory):
        engine = InferenceEngine.spawn(test_settings, "remote-a")
        try:
            assert isinstance(engine.receive(timeout=TIMEOUT), ModelLoaded)
        finally:
            engine.shutdown(timeout=TIMEOUT)

    def test_startup_failure(self, test_settings, backend_factory):
        backend_factory.fail_for.add("remote-a")
        engine = InferenceEngine.spawn(test_settings, "remote-a")

        with pytest.raises(WorkerStartupError):
            engine.wait_until_loaded(timeout=TIMEOUT)

        assert engine.worker.state == WorkerState.FAILED
        assert engine.shutdown(timeout=TIMEOUT) is True

    def test_unknown_model_fails_startup(self, test_settings, backend_factory):
        engine = InferenceEngine.spawn(test_settings, "missing")
        with pytest.raises(WorkerStartupError):
            engine.wait_until_loaded(timeout=TIMEOUT)

    def test_shutdown_joins_and_releases(self, test_settings, backend_factory):
        engine = InferenceEngine.spawn(test_settings, "remote-a")
        engine.wait_until_loaded(timeout=TIMEOUT)

        assert engine.shutdown(timeout=TIMEOUT) is True
        assert not engine.thread.is_alive()
        assert backend_factory.created[0].closed is True
        assert engine.worker.state == WorkerState.STOPPED

    def test_shutdown_twice(self, engine):
        assert engine.shutdown(timeout=TIMEOUT) is True
        assert engine.shutdown(timeout=TIMEOUT) is True


class TestRequests:
    """Tests for request/response flow through the queues."""

    def test_one_response_per_request_in_order(self, engine, make_context):
        for i in range(3):
            engine.submit(make_context(f"message {i}"))

        for i in range(3):
            response = next_text(engine)
            assert response.text == " Sure thing.\n"
            assert response.context.conversation.last().text() == f"message {i}"

        assert engine.poll() is None

    def test_failure_still_answers(self, engine, make_context):
        engine.submit(make_context("FAIL"))
        engine.submit(make_context("fine"))

        assert next_text(engine).text is None
        assert next_text(engine).text == " Sure thing.\n"

    def test_worker_gets_a_copy(self, engine, make_context):
        context = make_context("original")
        engine.submit(context)
        context.conversation.last().replace_text("changed afterwards")

        response = next_text(engine)
        assert response.context is not context
        assert response.context.conversation.last().text() == "original"

    def test_model_override(self, engine, backend_factory, make_context):
        engine.submit(make_context("hi", model_override="remote-b"))
        assert next_text(engine).text == " Sure thing.\n"

        assert [b.profile.name for b in backend_factory.created] == ["remote-a", "remote-b"]
        assert backend_factory.created[0].closed is True

    def test_poll_empty(self, engine):
        assert engine.poll() is None


class TestStreaming:
    def test_fragments_before_text(self, test_settings, backend_factory, make_context):
        test_settings.stream_fragments = True
        engine = InferenceEngine.spawn(test_settings, "remote-a")
        try:
            engine.wait_until_loaded(timeout=TIMEOUT)
            engine.submit(make_context("hi"))

            received = []
            while not received or not isinstance(received[-1], NewText):
                response = engine.receive(timeout=TIMEOUT)
                assert response is not None
                received.append(response)

            assert all(isinstance(r, NewTextFragment) for r in received[:-1])
            assert len(received) == 3
        finally:
            engine.shutdown(timeout=TIMEOUT)


class TestCancel:
    """Tests for the cancel side-channel."""

    def test_cancel_running_request(self, engine, backend_factory, make_context):
        backend = backend_factory.created[0]
        backend.wait_for_cancel = True

        engine.submit(make_context("take your time"))
        assert backend.started.wait(TIMEOUT)
        engine.cancel()

        assert next_text(engine).text is None

    def test_cancel_only_affects_current_request(self, engine, backend_factory, make_context):
        backend = backend_factory.created[0]
        backend.wait_for_cancel = True

        engine.submit(make_context("first"))
        assert backend.started.wait(TIMEOUT)
        backend.wait_for_cancel = False
        engine.cancel()
        engine.submit(make_context("second"))

        assert next_text(engine).text is None
        assert next_text(engine).text == " Sure thing.\n"

    def test_queue_full(self, test_settings, backend_factory, make_context):
        test_settings.request_queue_size = 1
        backend_factory.wait_for_cancel = True
        engine = InferenceEngine.spawn(test_settings, "remote-a")
        try:
            engine.wait_until_loaded(timeout=TIMEOUT)
            backend = backend_factory.created[0]

            engine.submit(make_context("busy"))
            assert backend.started.wait(TIMEOUT)
            engine.submit(make_context("queued"))

            with pytest.raises(EngineBusyError):
                engine.submit(make_context("rejected"), block=False)

            backend.wait_for_cancel = False
            engine.cancel()
            assert next_text(engine).text is None
            assert next_text(engine).text == " Sure thing.\n"
        finally:
            engine.shutdown(timeout=TIMEOUT)
