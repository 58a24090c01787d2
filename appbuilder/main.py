import asyncio
import logging
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from appbuilder import config
from appbuilder.errors import ClassifiedError, ErrorCategory, ErrorKind, describe_error, recovery_actions
from appbuilder.generator import CancellationToken, GenerationOptions, run_generation
from appbuilder.llm_client import status as llm_status

if not logging.getLogger().handlers:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

log = logging.getLogger(__name__)

DISCONNECT_POLL_SECS = 0.5

app = FastAPI(title="appbuilder")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOW_ORIGINS or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = str(uuid.uuid4())
    start = time.time()
    request.state.request_id = rid
    response = None
    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
    finally:
        dur_ms = int((time.time() - start) * 1000)
        log.info(
            "rid=%s method=%s path=%s status=%s dur_ms=%d",
            rid,
            request.method,
            request.url.path,
            getattr(response, "status_code", "?"),
            dur_ms,
        )


class GenerateRequest(BaseModel):
    description: str = Field("", description="Natural-language description of the app to build")
    model: Optional[str] = Field(default=None, description="Optional model name override")
    max_retries: Optional[int] = Field(default=None, ge=0, le=10)
    timeout_ms: Optional[int] = Field(default=None, gt=0, le=600_000)


_STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.INVALID_CREDENTIAL: 401,
    ErrorKind.AUTHENTICATION_FAILED: 401,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.QUOTA_EXCEEDED: 429,
    ErrorKind.TIMEOUT: 504,
    # Client closed request
    ErrorKind.CANCELLED: 499,
}


def _http_status_for(err: ClassifiedError) -> int:
    if err.category is ErrorCategory.VALIDATION:
        return 422
    return _STATUS_BY_KIND.get(err.kind, 502)


def _error_payload(err: ClassifiedError) -> Dict[str, Any]:
    body = err.to_dict()
    body.update(describe_error(err))
    # Keep the specific one-liner; the table message is generic
    body["message"] = err.message
    body["actions"] = recovery_actions(err)
    return {"error": body}


async def _cancel_on_disconnect(request: Request, token: CancellationToken) -> None:
    while not token.cancelled:
        if await request.is_disconnected():
            log.info("generate: client disconnected; cancelling")
            token.cancel("Client disconnected")
            return
        await asyncio.sleep(DISCONNECT_POLL_SECS)


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/llm/status")
def llm_status_endpoint() -> Dict[str, Any]:
    return llm_status()


@app.post("/generate")
async def generate_endpoint(
    req: GenerateRequest,
    request: Request,
    x_api_key: Optional[str] = Header(default=None),
):
    credential = (x_api_key or "").strip() or config.GEMINI_API_KEY
    options = GenerationOptions(
        max_retries=config.LLM_MAX_RETRIES if req.max_retries is None else req.max_retries,
        timeout_ms=req.timeout_ms or config.LLM_TIMEOUT_MS,
        model_name=(req.model or "").strip() or config.GEMINI_MODEL,
        temperature=config.TEMPERATURE,
        max_output_tokens=config.LLM_MAX_TOKENS,
    )
    token = CancellationToken()
    watcher = asyncio.ensure_future(_cancel_on_disconnect(request, token))
    try:
        result = await run_generation(req.description, credential, options, token)
    except ClassifiedError as err:
        status_code = _http_status_for(err)
        log.info("generate: error kind=%s status=%d", err.kind.value, status_code)
        return JSONResponse(status_code=status_code, content=_error_payload(err))
    finally:
        watcher.cancel()
    return {"code": result.code, "model": result.model, "attempts": result.attempts}
