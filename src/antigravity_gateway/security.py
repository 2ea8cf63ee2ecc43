import hmac

from fastapi import HTTPException, Request, status

from antigravity_gateway.settings import Settings

PROTECTED_PREFIX = "/v1/"


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization")
    if header is None:
        return None
    if header.startswith("Bearer "):
        return header[len("Bearer "):]
    return header


def verify_api_key(request: Request, settings: Settings) -> None:
    if not settings.api_key or not request.url.path.startswith(PROTECTED_PREFIX):
        return
    provided = _bearer_token(request)
    if provided is None or not hmac.compare_digest(
        provided.encode("utf-8"), settings.api_key.encode("utf-8")
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API Key")


async def verify_body_size(request: Request, settings: Settings) -> None:
    limit = settings.max_request_size
    too_large = HTTPException(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        detail=f"request body too large, limit is {limit} bytes",
    )
    content_length = request.headers.get("content-length")
    if content_length is not None:
        try:
            if int(content_length) > limit:
                raise too_large
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid content-length")
    if request.method in ("POST", "PUT", "PATCH"):
        body = await request.body()
        if len(body) > limit:
            raise too_large
