import logging
import time

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from antigravity_gateway.emitter import (
    Completion,
    collect_completion,
    render_error_stream,
    render_stream,
)
from antigravity_gateway.errors import TokenError, UpstreamError
from antigravity_gateway.logging_config import configure_logging
from antigravity_gateway.request_body import build_request_body
from antigravity_gateway.request_id import REQUEST_ID_HEADER, resolve_request_id, set_request_id
from antigravity_gateway.schemas import ChatCompletionRequest
from antigravity_gateway.security import verify_api_key, verify_body_size
from antigravity_gateway.settings import get_settings
from antigravity_gateway.token_manager import TokenManager
from antigravity_gateway.upstream import generate_assistant_response, get_available_models

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Antigravity Gateway")
token_manager = TokenManager(settings)

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.middleware("http")
async def guard_middleware(request: Request, call_next):
    try:
        await verify_body_size(request, settings)
        verify_api_key(request, settings)
    except HTTPException as exc:
        if exc.status_code == 401:
            logger.warning("api key check failed: %s %s", request.method, request.url.path)
        return _error(exc.status_code, exc.detail)
    return await call_next(request)


# registered last so it runs first
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
    set_request_id(request_id)
    if settings.app_env.lower() == "prod":
        if request.url.path in ("/docs", "/openapi.json"):
            return JSONResponse(status_code=404, content={"detail": "not found"})
    start = time.perf_counter()
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    logger.info(
        "%s %s %s %dms",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - start) * 1000,
    )
    return response


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/v1/models")
async def list_models():
    try:
        models = await get_available_models(settings, token_manager)
    except UpstreamError as exc:
        logger.error("failed to fetch model list: %s", exc.message)
        return _error(exc.status_code, exc.message)
    except TokenError as exc:
        logger.error("failed to fetch model list: %s", exc)
        return _error(500, str(exc))
    except Exception as exc:
        logger.exception("failed to fetch model list")
        return _error(500, str(exc))
    return models.model_dump()


@app.post("/v1/chat/completions")
async def chat_completions(request: Request):
    try:
        raw = await request.json()
    except ValueError:
        return _error(400, "request body must be valid JSON")
    if not isinstance(raw, dict):
        return _error(400, "request body must be a JSON object")
    try:
        payload = ChatCompletionRequest.model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        loc = ".".join(str(part) for part in first.get("loc", ()))
        return _error(400, f"{loc}: {first['msg']}" if loc else first["msg"])
    if payload.messages is None:
        return _error(400, "messages is required")

    body = build_request_body(
        payload.messages,
        payload.model,
        payload.sampling_params(),
        settings,
        payload.tools,
    )
    completion = Completion(model=payload.model or "unknown")
    events = generate_assistant_response(settings, token_manager, body)

    if payload.stream:
        async def event_stream():
            try:
                async for frame in render_stream(events, completion, request.is_disconnected):
                    yield frame
            except (UpstreamError, TokenError) as exc:
                logger.warning("stream failed: %s", exc)
                for frame in render_error_stream(str(exc), completion):
                    yield frame
            except Exception as exc:
                logger.exception("unhandled error while streaming")
                for frame in render_error_stream(str(exc), completion):
                    yield frame

        return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)

    try:
        response = await collect_completion(events, completion)
    except UpstreamError as exc:
        logger.warning("upstream error code=%s status=%s", exc.code, exc.status_code)
        return _error(exc.status_code, exc.message)
    except Exception as exc:
        logger.exception("failed to generate response")
        return _error(500, str(exc))
    return response


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
