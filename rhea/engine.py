"""Inference engine handle: one ingress queue served by a background worker.

The session core only ever sees a single ``send()`` and a single blocking
``request.reply.get()`` per turn. Everything behind the ingress queue
(provider routing, HTTP, retries inside LiteLLM) is opaque to it.
"""

import itertools
import json
import logging
import queue
import threading
import time
import urllib.error
import urllib.request
from contextlib import nullcontext
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable

from . import fmt
from .errors import ConfigError, EngineDispatchError, EngineReplyError

logger = logging.getLogger(__name__)

PROVIDERS = ("lmstudio", "huggingface", "openrouter", "ollama")

# Seconds close() waits for an in-flight request before giving up on the worker.
SHUTDOWN_TIMEOUT = 10

DEFAULT_BASE_URLS = {
    "lmstudio": "http://127.0.0.1:1234",
    "ollama": "http://127.0.0.1:11434",
}


@dataclass(frozen=True)
class SamplingParams:
    """Fixed sampling settings sent with every request."""

    temperature: float = 1.5
    top_k: int = 50
    top_p: float = 0.7
    max_tokens: int | None = None

    def as_kwargs(self) -> dict:
        kwargs = {
            "temperature": self.temperature,
            "top_k": self.top_k,
            "top_p": self.top_p,
        }
        if self.max_tokens is not None:
            kwargs["max_tokens"] = self.max_tokens
        return kwargs


_request_ids = itertools.count()


@dataclass
class Request:
    """One chat request plus the single-use queue its reply is delivered on."""

    messages: list[dict]
    sampling: SamplingParams
    id: int = field(default_factory=lambda: next(_request_ids))
    reply: queue.Queue = field(default_factory=lambda: queue.Queue(maxsize=1))


@dataclass
class Done:
    response: Any


@dataclass
class Failed:
    error: str


# Delivered on a reply queue when the engine shuts down before answering.
CLOSED = object()


# ---------------------------------------------------------------------------
# Backend (LiteLLM)
# ---------------------------------------------------------------------------


def route_model(provider: str, model_id: str, base_url: str | None, api_key: str | None):
    """Return (litellm model string, extra completion kwargs) for a provider."""
    if provider == "lmstudio":
        base = base_url or DEFAULT_BASE_URLS["lmstudio"]
        return f"openai/{model_id}", {"api_base": f"{base}/v1", "api_key": "lm-studio"}
    if provider == "ollama":
        base = base_url or DEFAULT_BASE_URLS["ollama"]
        bare_id = model_id.removeprefix("ollama/")
        return f"ollama/{bare_id}", {"api_base": base}
    if provider == "huggingface":
        bare_id = model_id.removeprefix("huggingface/")
        kwargs = {"api_key": api_key}
        if base_url:
            kwargs["api_base"] = base_url
        return f"huggingface/{bare_id}", kwargs
    if provider == "openrouter":
        # Only strip a doubled prefix; "openrouter/free" is a real org/model id.
        bare_id = (
            model_id[len("openrouter/") :]
            if model_id.startswith("openrouter/openrouter/")
            else model_id
        )
        kwargs = {"api_key": api_key}
        if base_url:
            kwargs["api_base"] = base_url
        return f"openrouter/{bare_id}", kwargs
    raise ConfigError(f"unknown provider {provider!r}")


def call_llm(model_str: str, messages: list[dict], sampling: SamplingParams, **kwargs):
    """Run one non-streaming, tool-free chat completion and return the response."""
    import litellm

    litellm.suppress_debug_info = True

    try:
        return litellm.completion(
            model=model_str,
            messages=messages,
            stream=False,
            **sampling.as_kwargs(),
            **kwargs,
        )
    except Exception as e:
        raise EngineReplyError(f"LLM call failed: {e}") from e


def make_backend(
    provider: str, model_id: str, base_url: str | None = None, api_key: str | None = None
) -> Callable[[list[dict], SamplingParams], Any]:
    model_str, kwargs = route_model(provider, model_id, base_url, api_key)
    return partial(call_llm, model_str, **kwargs)


def discover_model(base_url: str, verbose: bool) -> str | None:
    """Ask LM Studio's native API which LLM is currently loaded."""
    url = f"{base_url}/api/v1/models"
    if verbose:
        fmt.model_info(f"Querying {url} for loaded models...")

    spinner = fmt.llm_spinner("Querying LM Studio") if verbose else nullcontext()
    try:
        req = urllib.request.Request(url)
        with spinner, urllib.request.urlopen(req, timeout=10) as resp:
            data = json.loads(resp.read().decode())
    except urllib.error.URLError as e:
        raise ConfigError(f"could not connect to LM Studio at {base_url}: {e}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON from {url}: {e}")

    # LM Studio answers with "data" (OpenAI-compat) or "models" (native API)
    entries = data.get("data") or data.get("models") or []
    for entry in entries:
        if entry.get("type") == "llm" and entry.get("loaded_instances"):
            model_key = entry.get("id", entry.get("key"))
            if verbose:
                fmt.model_info(f"Discovered loaded model: {model_key}")
            return model_key
    return None


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class InferenceEngine:
    """Shared handle to the model, created once per process.

    Requests go through a single ingress queue and are served one at a time
    by a daemon worker thread. Each request carries its own reply queue which
    receives exactly one of ``Done``, ``Failed`` or ``CLOSED``.
    """

    def __init__(self, backend: Callable[[list[dict], SamplingParams], Any], name: str = "model"):
        self.name = name
        self._backend = backend
        self._ingress: queue.Queue = queue.Queue()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._closed = False

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc_info):
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        if self._closed:
            raise EngineDispatchError("engine is already closed")
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._serve, name="rhea-engine", daemon=True
        )
        self._thread.start()
        logger.debug("engine started for %s", self.name)

    def send(self, request: Request) -> None:
        """Hand a request to the worker. Raises EngineDispatchError if closed."""
        with self._lock:
            if self._closed or self._thread is None:
                raise EngineDispatchError("inference engine is not accepting requests")
            self._ingress.put(request)

    def close(self) -> None:
        """Idempotent shutdown. Pending requests receive CLOSED."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._ingress.put(None)

        if self._thread is not None:
            self._thread.join(timeout=SHUTDOWN_TIMEOUT)
            if self._thread.is_alive():
                logger.warning("engine worker did not stop within %ss", SHUTDOWN_TIMEOUT)

        stop_seen = False
        while True:
            try:
                pending = self._ingress.get_nowait()
            except queue.Empty:
                break
            if pending is None:
                stop_seen = True
            else:
                pending.reply.put(CLOSED)
        if stop_seen:
            # The worker is still busy; leave the stop marker for it.
            self._ingress.put(None)
        logger.debug("engine closed")

    def _serve(self) -> None:
        while True:
            request = self._ingress.get()
            if request is None:
                return
            if self._closed:
                request.reply.put(CLOSED)
                continue

            t0 = time.monotonic()
            try:
                response = self._backend(request.messages, request.sampling)
            except Exception as e:
                logger.debug("request %d failed: %s", request.id, e)
                request.reply.put(Failed(str(e)))
                continue
            logger.debug(
                "request %d served in %.2fs", request.id, time.monotonic() - t0
            )
            request.reply.put(Done(response))
