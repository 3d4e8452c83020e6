import asyncio
from types import SimpleNamespace

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from threadnotion import llm_client
from threadnotion.llm_client import (
    ChatLlmClient,
    MaxRetryErrorsException,
    _is_throttling_error,
    _ThrottleGate,
    call_with_retries_sync,
    to_chat_messages,
)


class _FakeResponses:
    def __init__(self, text="  Hello there  "):
        self.text = text
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(
            output_text=self.text,
            usage=SimpleNamespace(
                input_tokens=1_000_000,
                output_tokens=0,
                total_tokens=1_000_000,
                input_tokens_details=None,
            ),
        )


@pytest.fixture
def openai_client(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    client = ChatLlmClient("gpt-4o-mini", vertex_project="", vertex_region="us-central1", timeout=5)
    client._client = SimpleNamespace(responses=_FakeResponses())
    return client


def test_retries_until_success():
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise RuntimeError("boom")
        return "ok"

    logged = []
    assert call_with_retries_sync(flaky, retries=3, log=logged.append) == "ok"
    assert len(attempts) == 3
    assert len(logged) == 2


def test_retries_exhausted_raise_with_cause():
    def broken():
        raise RuntimeError("invalid api key")

    with pytest.raises(MaxRetryErrorsException) as info:
        call_with_retries_sync(broken, retries=2)
    assert isinstance(info.value.__cause__, RuntimeError)


def test_to_chat_messages_maps_roles():
    rows = [
        SimpleNamespace(role="user", content="hi"),
        SimpleNamespace(role="assistant", content="hello"),
        SimpleNamespace(role="system", content="rules"),
    ]
    out = to_chat_messages(rows)
    assert [type(m) for m in out] == [HumanMessage, AIMessage, SystemMessage]
    assert [m.content for m in out] == ["hi", "hello", "rules"]


def test_openai_invoke_sends_roles_and_tracks_cost(openai_client):
    reply = openai_client.invoke([SystemMessage(content="be brief"), HumanMessage(content="hi"), AIMessage(content="yo")])
    assert reply == "Hello there"

    call = openai_client._client.responses.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["input"] == [
        {"role": "system", "content": "be brief"},
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "yo"},
    ]
    assert "text" not in call
    assert openai_client.get_accrued_cost() == pytest.approx(0.15)


def test_openai_json_mode_requests_json_object(openai_client):
    openai_client.invoke([HumanMessage(content="Return JSON")], json_mode=True)
    call = openai_client._client.responses.calls[0]
    assert call["text"] == {"format": {"type": "json_object"}}


def test_retry_log_includes_traceback():
    def broken():
        raise RuntimeError("boom")

    logged = []
    with pytest.raises(MaxRetryErrorsException):
        call_with_retries_sync(broken, retries=1, log=logged.append)
    assert "Traceback (most recent call last)" in logged[0]
    assert "RuntimeError: boom" in logged[0]


# --- shared throttle gate ---

@pytest.fixture
def no_jitter(monkeypatch):
    monkeypatch.setattr(llm_client.random, "uniform", lambda low, high: low)


@pytest.mark.parametrize(
    "error, throttled",
    [
        (TimeoutError(), True),
        (asyncio.TimeoutError(), True),
        (RuntimeError("Request timed out."), True),
        (RuntimeError("429 RESOURCE_EXHAUSTED"), True),
        (RuntimeError("Error code: 429 - Too Many Requests"), True),
        (RuntimeError("429: rate limit reached"), True),
        (RuntimeError("401 invalid api key"), False),
        (RuntimeError("429 apples"), False),
    ],
)
def test_throttling_errors_are_recognized(error, throttled):
    assert _is_throttling_error(error) is throttled


def test_gate_delay_doubles_up_to_cap(no_jitter):
    gate = _ThrottleGate(initial_delay=10.0, max_delay=30.0)
    assert gate.close() == pytest.approx(9.5)
    assert gate._delay == 20.0
    gate.close()
    assert gate._delay == 30.0
    gate.close()
    assert gate._delay == 30.0


def test_gate_relax_halves_delay_with_floor():
    gate = _ThrottleGate(initial_delay=8.0)
    gate.relax()
    assert gate._delay == 4.0
    gate = _ThrottleGate(initial_delay=1.5)
    gate.relax()
    assert gate._delay == 1.0


def test_closed_gate_sleeps_until_reopened(monkeypatch, no_jitter):
    clock = [100.0]
    slept = []

    def fake_sleep(seconds):
        slept.append(seconds)
        clock[0] += seconds

    monkeypatch.setattr(llm_client.time, "monotonic", lambda: clock[0])
    monkeypatch.setattr(llm_client.time, "sleep", fake_sleep)

    gate = _ThrottleGate(initial_delay=2.0)
    pause = gate.close()
    gate.wait()
    assert sum(slept) == pytest.approx(pause)
    assert all(s <= 1.0 for s in slept)


def test_rate_limited_calls_grow_shared_backoff(monkeypatch, no_jitter):
    gate = _ThrottleGate(initial_delay=2.0)
    monkeypatch.setattr(gate, "wait", lambda: None)
    monkeypatch.setattr(llm_client, "_gate", gate)

    errors = [RuntimeError("429 RESOURCE_EXHAUSTED"), RuntimeError("429 RESOURCE_EXHAUSTED")]

    def flaky():
        if errors:
            raise errors.pop(0)
        return "ok"

    assert call_with_retries_sync(flaky, retries=3) == "ok"
    # 2 -> 4 -> 8 on the two 429s, halved by the success
    assert gate._delay == 4.0


def test_plain_failures_leave_backoff_alone(monkeypatch):
    gate = _ThrottleGate(initial_delay=2.0)
    monkeypatch.setattr(gate, "wait", lambda: None)
    monkeypatch.setattr(llm_client, "_gate", gate)

    with pytest.raises(MaxRetryErrorsException):
        call_with_retries_sync(lambda: 1 / 0, retries=2)
    assert gate._delay == 2.0
