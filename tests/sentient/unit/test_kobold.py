"""Tests for the KoboldAI remote backend."""

import json

import httpx
import pytest

from sentient.config.settings import SamplingProfile
from sentient.llm.backends.kobold import KoboldBackend
from sentient.utils.exceptions import GenerationCancelled, LLMInferenceError


def make_backend(handler, host: str = "http://kobold.local:5001") -> KoboldBackend:
    return KoboldBackend(
        host=host,
        context_window_tokens=2048,
        timeout_s=30,
        transport=httpx.MockTransport(handler),
    )


def ok_handler(text: str = " Hello there."):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"results": [{"text": text}]})

    return handler


class TestRequestBody:
    """Tests for the generate request."""

    def test_body_fields(self, sampling):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["method"] = request.method
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"results": [{"text": "ok"}]})

        backend = make_backend(handler)
        backend.infer("USER: hi\nAlice:", sampling, 150, stop_sequences=["USER: ", "Alice: "])

        assert captured["method"] == "POST"
        assert captured["url"] == "http://kobold.local:5001/api/v1/generate"
        body = captured["body"]
        assert body["prompt"] == "USER: hi\nAlice:"
        assert body["max_context_length"] == 2048
        assert body["max_length"] == 150
        assert body["temperature"] == 0.7
        assert body["top_k"] == 40
        assert body["top_p"] == 0.9
        assert body["stop_sequence"] == ["USER: ", "Alice: "]
        assert body["trim_stop"] is True

    def test_no_stop_sequences(self, sampling):
        backend = make_backend(ok_handler())
        body = backend.build_request_body("p", sampling, 10)
        assert "stop_sequence" not in body

    def test_mirostat_body(self):
        backend = make_backend(ok_handler())
        profile = SamplingProfile(name="m", temperature=0.2, mirostat=2, mirostat_tau=5.0)
        body = backend.build_request_body("p", profile, 10)
        assert body["mirostat"] == 2
        assert body["temperature"] == 1.0
        assert body["top_k"] == 0
        assert body["top_p"] == 1.0
        assert body["min_p"] == 0.0

    def test_trailing_slash_stripped(self):
        backend = make_backend(ok_handler(), host="http://kobold.local:5001/")
        assert backend.generate_url == "http://kobold.local:5001/api/v1/generate"

    def test_host_required(self):
        with pytest.raises(ValueError):
            KoboldBackend(host="", context_window_tokens=2048)

    def test_default_timeout(self):
        backend = KoboldBackend(host="http://kobold.local", context_window_tokens=2048)
        assert backend.timeout_s == 7200
        backend.close()


class TestInfer:
    """Tests for KoboldBackend.infer."""

    def test_returns_first_result(self, sampling):
        backend = make_backend(ok_handler(" The sea is calm."))
        assert backend.infer("prompt", sampling, 50) == " The sea is calm."

    def test_non_200_status(self, sampling):
        backend = make_backend(lambda request: httpx.Response(503, text="busy"))
        with pytest.raises(LLMInferenceError, match="503"):
            backend.infer("prompt", sampling, 50)

    def test_empty_results(self, sampling):
        backend = make_backend(lambda request: httpx.Response(200, json={"results": []}))
        with pytest.raises(LLMInferenceError, match="empty result"):
            backend.infer("prompt", sampling, 50)

    def test_malformed_body(self, sampling):
        backend = make_backend(lambda request: httpx.Response(200, content=b"not json"))
        with pytest.raises(LLMInferenceError):
            backend.infer("prompt", sampling, 50)

    def test_connection_error(self, sampling):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(LLMInferenceError):
            make_backend(handler).infer("prompt", sampling, 50)

    def test_timeout(self, sampling):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        with pytest.raises(LLMInferenceError, match="timed out"):
            make_backend(handler).infer("prompt", sampling, 50)


class TestCancel:
    """Tests for advisory cancellation."""

    def test_cancel_before_send(self, sampling):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"results": [{"text": "ok"}]})

        with pytest.raises(GenerationCancelled):
            make_backend(handler).infer("prompt", sampling, 50, should_cancel=lambda: True)
        assert calls == []

    def test_cancel_while_in_flight(self, sampling):
        answers = iter([False, True])
        with pytest.raises(GenerationCancelled):
            make_backend(ok_handler()).infer(
                "prompt", sampling, 50, should_cancel=lambda: next(answers)
            )

    def test_not_cancelled(self, sampling):
        text = make_backend(ok_handler("fine")).infer(
            "prompt", sampling, 50, should_cancel=lambda: False
        )
        assert text == "fine"

    def test_cancel_is_an_inference_error(self):
        assert issubclass(GenerationCancelled, LLMInferenceError)
