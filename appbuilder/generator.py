"""Turn an app description into a single-file HTML document.

Each call validates its inputs once, then dispatches attempts in a loop. An
attempt races the model call against a timeout timer and the caller's
cancellation token; whichever settles first decides the attempt. Only rate
limiting is retried, with exponential backoff.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from appbuilder.errors import ClassifiedError, ErrorKind, classify_error
from appbuilder.llm_client import GeminiClient, ModelClient, SamplingConfig
from appbuilder.llm_parsing import clean_generated_code, extract_text
from appbuilder.llm_prompts import build_prompt
from appbuilder.validators import validate_credential, validate_description

log = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_TEMPERATURE = 0.1
DEFAULT_TIMEOUT_MS = 60000
DEFAULT_MAX_RETRIES = 3
BACKOFF_BASE_MS = 1000
BACKOFF_CAP_MS = 30000

# Indirection so tests can observe backoff without waiting
_sleep = asyncio.sleep


def backoff_delay_ms(attempt: int) -> int:
    return min(BACKOFF_BASE_MS * (2 ** attempt), BACKOFF_CAP_MS)


class CancellationToken:
    """Caller-owned cancellation signal.

    Callbacks run synchronously inside ``cancel()``, so cancel from the event
    loop thread (or via ``loop.call_soon_threadsafe(token.cancel)``).
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason = "Generation was cancelled"
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if reason:
            self._reason = reason
        callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            cb()

    def add_callback(self, fn: Callable[[], None]) -> Callable[[], None]:
        """Register ``fn`` to run on cancellation; returns a remover."""
        if self._cancelled:
            fn()
            return lambda: None
        self._callbacks.append(fn)

        def remove() -> None:
            if fn in self._callbacks:
                self._callbacks.remove(fn)

        return remove

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise ClassifiedError(ErrorKind.CANCELLED, self._reason)


class _SettleOnce:
    """First-writer-wins latch; later resolve/reject calls are ignored."""

    def __init__(self) -> None:
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def settled(self) -> bool:
        return self._future.done()

    def resolve(self, value: Any) -> bool:
        if self._future.done():
            return False
        self._future.set_result(value)
        return True

    def reject(self, exc: BaseException) -> bool:
        if self._future.done():
            return False
        self._future.set_exception(exc)
        return True

    def __await__(self):
        return self._future.__await__()


def _forward_to(latch: _SettleOnce, label: str) -> Callable[[asyncio.Future], None]:
    def _on_done(fut: asyncio.Future) -> None:
        if fut.cancelled():
            return
        exc = fut.exception()
        won = latch.reject(exc) if exc is not None else latch.resolve(fut.result())
        if not won:
            log.debug("generate: late %s settlement ignored", label)

    return _on_done


@dataclass(frozen=True)
class GenerationOptions:
    max_retries: int = DEFAULT_MAX_RETRIES
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    model_name: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: Optional[int] = None

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if not (self.model_name or "").strip():
            raise ValueError("model_name must be non-empty")


@dataclass(frozen=True)
class GenerationRequest:
    """One dispatch attempt. Retries copy it with ``attempt`` bumped."""

    description: str
    credential: str = field(repr=False)
    prompt: str = field(repr=False)
    model_name: str
    temperature: float
    timeout_ms: int
    max_retries: int
    attempt: int = 0
    max_output_tokens: Optional[int] = None

    @property
    def sampling(self) -> SamplingConfig:
        return SamplingConfig(temperature=self.temperature, max_output_tokens=self.max_output_tokens)

    def next_attempt(self) -> "GenerationRequest":
        return dataclasses.replace(self, attempt=self.attempt + 1)


@dataclass(frozen=True)
class GenerationResult:
    code: str
    model: str
    attempts: int = 1


async def _dispatch(client: ModelClient, request: GenerationRequest, token: Optional[CancellationToken]) -> Any:
    """Race one model call against the timeout and the cancellation token."""
    loop = asyncio.get_running_loop()
    latch = _SettleOnce()
    call = asyncio.ensure_future(client.complete(request.prompt, request.model_name, request.sampling))
    call.add_done_callback(_forward_to(latch, "model response"))

    def _on_timeout() -> None:
        if latch.reject(
            ClassifiedError(
                ErrorKind.TIMEOUT,
                f"Request timeout: No response from AI model after {request.timeout_ms}ms",
            )
        ):
            log.warning("generate: timed out after %dms (attempt %d)", request.timeout_ms, request.attempt)

    timer = loop.call_later(request.timeout_ms / 1000.0, _on_timeout)
    unregister: Callable[[], None] = lambda: None
    if token is not None:
        unregister = token.add_callback(lambda: latch.reject(ClassifiedError(ErrorKind.CANCELLED, token.reason)))
    try:
        return await latch
    finally:
        timer.cancel()
        unregister()
        if not call.done():
            call.cancel()


async def _backoff(delay_ms: int, token: Optional[CancellationToken]) -> None:
    if token is None:
        await _sleep(delay_ms / 1000.0)
        return
    latch = _SettleOnce()
    sleeper = asyncio.ensure_future(_sleep(delay_ms / 1000.0))
    sleeper.add_done_callback(_forward_to(latch, "backoff"))
    unregister = token.add_callback(lambda: latch.reject(ClassifiedError(ErrorKind.CANCELLED, token.reason)))
    try:
        await latch
    finally:
        unregister()
        if not sleeper.done():
            sleeper.cancel()


async def _attempt(client: ModelClient, request: GenerationRequest, token: Optional[CancellationToken]) -> str:
    response = await _dispatch(client, request, token)
    text = extract_text(response)
    return clean_generated_code(text)


async def run_generation(
    description: str,
    credential: str,
    options: Optional[GenerationOptions] = None,
    cancellation_token: Optional[CancellationToken] = None,
    *,
    client: Optional[ModelClient] = None,
) -> GenerationResult:
    """Generate an HTML app and report how it went.

    Raises ClassifiedError on failure. ``client`` defaults to a GeminiClient
    bound to the validated credential.
    """
    opts = options or GenerationOptions()
    text = validate_description(description)
    key = validate_credential(credential)
    request = GenerationRequest(
        description=text,
        credential=key,
        prompt=build_prompt(text),
        model_name=opts.model_name.strip(),
        temperature=opts.temperature,
        timeout_ms=opts.timeout_ms,
        max_retries=opts.max_retries,
        max_output_tokens=opts.max_output_tokens,
    )
    model = client if client is not None else GeminiClient(key)
    token = cancellation_token

    while True:
        if token is not None:
            token.raise_if_cancelled()
        log.info(
            "generate: dispatch model=%s attempt=%d/%d",
            request.model_name,
            request.attempt + 1,
            request.max_retries + 1,
        )
        try:
            code = await _attempt(model, request, token)
        except Exception as exc:
            err = classify_error(exc)
            if not err.retryable or request.attempt >= request.max_retries:
                log.warning(
                    "generate: failed kind=%s attempt=%d: %s",
                    err.kind.value,
                    request.attempt + 1,
                    err.message,
                )
                if err is exc:
                    raise
                raise err from exc
            delay_ms = backoff_delay_ms(request.attempt)
            log.warning(
                "generate: rate limited; retrying in %dms (attempt %d/%d)",
                delay_ms,
                request.attempt + 1,
                request.max_retries,
            )
            await _backoff(delay_ms, token)
            request = request.next_attempt()
            continue
        log.info("generate: ok model=%s attempts=%d chars=%d", request.model_name, request.attempt + 1, len(code))
        return GenerationResult(code=code, model=request.model_name, attempts=request.attempt + 1)


async def generate(
    description: str,
    credential: str,
    options: Optional[GenerationOptions] = None,
    cancellation_token: Optional[CancellationToken] = None,
    *,
    client: Optional[ModelClient] = None,
) -> str:
    """Return cleaned HTML for ``description`` or raise ClassifiedError."""
    result = await run_generation(description, credential, options, cancellation_token, client=client)
    return result.code
