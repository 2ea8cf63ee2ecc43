import json
import logging
import time
from typing import Any, AsyncIterator, Protocol

import httpx

from .errors import UpstreamError, retryable_for_status
from .events import StreamEvent
from .normalize import estimate_tokens
from .schemas import ModelCard, ModelList
from .settings import Settings
from .stream_decoder import StreamDecoder

logger = logging.getLogger(__name__)


class Credential(Protocol):
    access_token: str


class TokenProvider(Protocol):
    async def get_token(self) -> Credential | None: ...

    async def disable_current_token(self, token: Any) -> None: ...


def _headers(settings: Settings, token: Credential) -> dict[str, str]:
    return {
        "Host": settings.api_host,
        "User-Agent": settings.user_agent,
        "Authorization": f"Bearer {token.access_token}",
        "Content-Type": "application/json",
        "Accept-Encoding": "gzip",
    }


async def _require_token(tokens: TokenProvider) -> Credential:
    token = await tokens.get_token()
    if token is None:
        raise UpstreamError(
            status_code=503,
            message="no available token, add an account to the accounts file",
            code="no_token",
            retryable=False,
            err_type="gateway_error",
        )
    return token


async def _raise_for_status(
    resp: httpx.Response, tokens: TokenProvider, token: Credential
) -> None:
    if resp.status_code == 200:
        return
    raw = await resp.aread()
    error_text = raw.decode("utf-8", "replace")
    if resp.status_code == 403:
        await tokens.disable_current_token(token)
        raise UpstreamError(
            status_code=403,
            message=f"account has no permission and was disabled: {error_text}",
            code="forbidden",
            retryable=False,
            err_type="upstream_error",
        )
    logger.warning("upstream status=%s", resp.status_code)
    raise UpstreamError(
        status_code=resp.status_code,
        message=f"upstream request failed ({resp.status_code}): {error_text}",
        code="upstream_error",
        retryable=retryable_for_status(resp.status_code),
        err_type="upstream_error",
    )


def _timeout_error() -> UpstreamError:
    return UpstreamError(
        status_code=504,
        message="upstream timeout",
        code="upstream_timeout",
        retryable=True,
        err_type="upstream_error",
    )


def _connection_error() -> UpstreamError:
    return UpstreamError(
        status_code=502,
        message="upstream connection error",
        code="upstream_unavailable",
        retryable=True,
        err_type="upstream_error",
    )


async def generate_assistant_response(
    settings: Settings,
    tokens: TokenProvider,
    body: dict[str, Any],
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[StreamEvent]:
    """Stream one assistant turn; the last event is always a FinishEvent.

    Closing the iterator early closes the upstream connection.
    """
    token = await _require_token(tokens)
    decoder = StreamDecoder(prompt_tokens=estimate_tokens(json.dumps(body, ensure_ascii=False)))

    try:
        async with httpx.AsyncClient(
            timeout=settings.upstream_timeout_seconds, transport=transport
        ) as client:
            async with client.stream(
                "POST", settings.api_url, json=body, headers=_headers(settings, token)
            ) as resp:
                await _raise_for_status(resp, tokens, token)
                async for text in resp.aiter_text():
                    for event in decoder.feed(text):
                        yield event
    except httpx.TimeoutException:
        raise _timeout_error()
    except httpx.RequestError:
        raise _connection_error()

    if decoder.skipped_lines:
        logger.info("skipped %d undecodable stream line(s)", decoder.skipped_lines)
    for event in decoder.close():
        yield event


async def get_available_models(
    settings: Settings,
    tokens: TokenProvider,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ModelList:
    token = await _require_token(tokens)
    try:
        async with httpx.AsyncClient(
            timeout=settings.upstream_timeout_seconds, transport=transport
        ) as client:
            resp = await client.post(
                settings.models_url, json={}, headers=_headers(settings, token)
            )
            await _raise_for_status(resp, tokens, token)
    except httpx.TimeoutException:
        raise _timeout_error()
    except httpx.RequestError:
        raise _connection_error()

    try:
        payload = resp.json()
    except ValueError:
        raise UpstreamError(
            status_code=502,
            message="invalid model catalog response",
            code="invalid_response",
            retryable=True,
            err_type="upstream_error",
        )
    models = payload.get("models") if isinstance(payload, dict) else None
    if isinstance(models, list):
        # some catalog versions return [{"name": ...}] instead of a mapping
        model_ids = [m.get("id") or m.get("name") for m in models if isinstance(m, dict)]
    else:
        model_ids = list(models or {})
    created = int(time.time())
    return ModelList(
        data=[ModelCard(id=model_id, created=created) for model_id in model_ids if model_id]
    )
