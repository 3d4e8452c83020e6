import asyncio
import logging
import random
import threading
import time
import traceback
from typing import Any, Callable, Dict, List, TypeVar

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_vertexai import ChatVertexAI
from openai import OpenAI

from threadnotion.model_props import estimate_cost_usd, is_openai_model, parse_model_name

T = TypeVar("T")

logger = logging.getLogger("threadnotion")

_OPENAI_ROLES = {SystemMessage: "system", AIMessage: "assistant"}
_STORED_ROLES = {"user": HumanMessage, "assistant": AIMessage}


class MaxRetryErrorsException(Exception):
    pass


class _ThrottleGate:
    """
    Process-wide pause shared by every client. A rate-limited or timed-out call
    closes the gate for a jittered, doubling delay; successful calls halve it.
    """

    def __init__(self, initial_delay: float = 30.0, max_delay: float = 600.0):
        self._lock = threading.Lock()
        self._open_at = 0.0
        self._delay = initial_delay
        self._max_delay = max_delay

    def wait(self) -> None:
        while True:
            with self._lock:
                remaining = self._open_at - time.monotonic()
            if remaining <= 0:
                return
            time.sleep(min(remaining, 1.0))

    def close(self) -> float:
        with self._lock:
            pause = random.uniform(self._delay * 0.95, self._delay * 1.35)
            self._open_at = max(self._open_at, time.monotonic() + pause)
            self._delay = min(self._delay * 2, self._max_delay)
            return pause

    def relax(self) -> None:
        with self._lock:
            self._delay = max(1.0, self._delay * 0.5)


_gate = _ThrottleGate()


def _is_throttling_error(e: Exception) -> bool:
    if isinstance(e, (asyncio.TimeoutError, TimeoutError)):
        return True
    text = str(e)
    lowered = text.lower()
    if "timed out" in lowered or "TimeoutError" in repr(e):
        return True
    return "429" in text and (
        "RESOURCE_EXHAUSTED" in text
        or "Too Many Requests" in text
        or "rate limit" in lowered
    )


def call_with_retries_sync(
    fn: Callable[[], T],
    *,
    retries: int = 3,
    log: Callable[[str], None] | None = None,
) -> T:
    """
    Runs fn up to `retries` times behind the shared throttle gate.
    The last failure is chained as __cause__ of MaxRetryErrorsException.
    """
    last_error: Exception | None = None

    for attempt in range(1, retries + 1):
        _gate.wait()
        started = time.time()
        try:
            result = fn()
        except Exception as e:
            last_error = e
            note = f"attempt {attempt}/{retries} failed after {time.time() - started:.2f}s"
            if _is_throttling_error(e):
                note += f", pausing all LLM calls ~{_gate.close():.1f}s"
            if log:
                log(f"{note}: {e!r}\n{traceback.format_exc()}")
            continue
        _gate.relax()
        return result

    raise MaxRetryErrorsException(f"All {retries} retry attempts failed.") from last_error


class ChatLlmClient:
    """
    Chat wrapper used by the backend:

        reply = chat_llm.invoke([SystemMessage(...), HumanMessage(...), AIMessage(...)])

    gpt-* models go through the OpenAI Responses API, anything else through
    ChatVertexAI. Token usage is priced per call and summed into `usage`.
    """

    def __init__(
        self,
        model_name: str,
        *,
        vertex_project: str,
        vertex_region: str,
        timeout: float | None = None,
    ):
        self.model_name = model_name
        self.usage: Dict[str, float] = {}
        self._openai_params: Dict[str, Any] = {}
        self._vertex = None
        self._client = None

        if is_openai_model(model_name):
            self.provider = "openai"
            self.model_name, self._openai_params = parse_model_name(model_name)
            kwargs: Dict[str, Any] = {"max_retries": 0}
            if timeout is not None:
                kwargs["timeout"] = timeout
            self._client = OpenAI(**kwargs)
        else:
            self.provider = "vertex"
            self._vertex = ChatVertexAI(
                project=vertex_project or None,
                location=vertex_region,
                model_name=model_name,
                timeout=timeout,
            )

    # --- usage ---

    def _record_usage(self, prompt: int, completion: int, cached: int = 0, service_tier: str | None = None) -> None:
        cost = estimate_cost_usd(self.model_name, prompt, completion, service_tier=service_tier)
        for key, value in (
            ("prompt_tokens", prompt),
            ("completion_tokens", completion),
            ("cached_tokens", cached),
            ("accrued_cost", cost),
        ):
            self.usage[key] = self.usage.get(key, 0) + value

    def get_accrued_cost(self) -> float:
        return float(self.usage.get("accrued_cost", 0.0))

    # --- providers ---

    def _call_vertex(self, messages: List[BaseMessage]) -> str:
        resp = self._vertex.invoke(messages)
        meta = getattr(resp, "usage_metadata", None) or (getattr(resp, "response_metadata", None) or {}).get("usage_metadata")
        if meta:
            def pick(*keys):
                for k in keys:
                    v = meta.get(k) if isinstance(meta, dict) else getattr(meta, k, None)
                    if v:
                        return int(v)
                return 0

            self._record_usage(
                pick("input_tokens", "prompt_token_count"),
                pick("output_tokens", "candidates_token_count"),
                pick("cached_content_token_count"),
            )
        return str(getattr(resp, "content", resp)).strip()

    def _call_openai(self, messages: List[BaseMessage], json_mode: bool) -> str:
        params = dict(self._openai_params)
        if json_mode:
            params["text"] = {**params.get("text", {}), "format": {"type": "json_object"}}

        resp = self._client.responses.create(
            model=self.model_name,
            input=[{"role": _OPENAI_ROLES.get(type(m), "user"), "content": str(m.content)} for m in messages],
            **params,
        )
        usage = getattr(resp, "usage", None)
        if usage is not None:
            details = getattr(usage, "input_tokens_details", None)
            self._record_usage(
                getattr(usage, "input_tokens", 0) or 0,
                getattr(usage, "output_tokens", 0) or 0,
                (getattr(details, "cached_tokens", 0) or 0) if details else 0,
                service_tier=params.get("service_tier"),
            )
        return (getattr(resp, "output_text", "") or "").strip()

    def invoke(
        self,
        messages: List[BaseMessage],
        *,
        json_mode: bool = False,
        retries: int = 3,
    ) -> str:
        """
        Sends the messages and returns the reply text. `json_mode` asks OpenAI
        models for a JSON object; Vertex relies on the prompt alone.
        """
        if self.provider == "openai":
            call = lambda: self._call_openai(messages, json_mode)
        else:
            call = lambda: self._call_vertex(messages)
        reply = call_with_retries_sync(
            call,
            retries=retries,
            log=lambda msg: logger.warning(f"[CHAT-LLM-RETRY] {self.model_name} {msg}"),
        )
        logger.debug(f"[LLM] {self.model_name} accrued cost so far: ${self.get_accrued_cost():.6f}")
        return reply


def to_chat_messages(rows) -> list[BaseMessage]:
    """Stored {role, content} rows as LangChain messages; unknown roles become system messages."""
    out: list[BaseMessage] = []
    for row in rows or []:
        role = (getattr(row, "role", None) or "").strip().lower()
        message_cls = _STORED_ROLES.get(role, SystemMessage)
        out.append(message_cls(content=str(getattr(row, "content", ""))))
    return out
