import logging
import logging.config
import re

from .request_id import get_request_id

_SECRET_KV_RE = re.compile(
    r"(?i)\b(authorization|access_token|refresh_token|client_secret|token|secret|api_key|apikey)\b"
    r"(\"?\s*[:=]\s*\"?)([^\s,;\"]+)"
)
_BEARER_RE = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9\-._~+/]+=*")
_GOOGLE_TOKEN_RE = re.compile(r"\bya29\.[A-Za-z0-9\-._~+/]+")


def redact_text(text: str) -> str:
    text = _BEARER_RE.sub("Bearer [redacted]", text)
    text = _GOOGLE_TOKEN_RE.sub("[redacted_token]", text)
    text = _SECRET_KV_RE.sub(r"\1\2[redacted]", text)
    return text


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


class RedactionFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        record.msg = redact_text(message)
        record.args = ()
        return True


def configure_logging(log_level: str) -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "request_id": {"()": "antigravity_gateway.logging_config.RequestIdFilter"},
                "redact": {"()": "antigravity_gateway.logging_config.RedactionFilter"},
            },
            "formatters": {
                "standard": {
                    "format": "%(asctime)s %(levelname)s %(name)s request_id=%(request_id)s %(message)s"
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "filters": ["request_id", "redact"],
                    "level": log_level,
                }
            },
            "loggers": {
                "uvicorn": {
                    "handlers": ["console"],
                    "level": log_level,
                    "propagate": False,
                },
                "uvicorn.error": {
                    "handlers": ["console"],
                    "level": log_level,
                    "propagate": False,
                },
                "uvicorn.access": {"handlers": [], "level": "WARNING", "propagate": False},
                "httpx": {"handlers": ["console"], "level": "WARNING", "propagate": False},
            },
            "root": {"handlers": ["console"], "level": log_level},
        }
    )
