"""Random identifiers for upstream envelopes and OpenAI responses.

None of these need to be cryptographically secure, only unlikely to collide
within one process lifetime.
"""

import random
import string
import time
import uuid

_ADJECTIVES = ("useful", "bright", "swift", "calm", "bold")
_NOUNS = ("fuze", "wave", "spark", "flow", "core")
_ALPHABET = string.ascii_lowercase + string.digits


def _random_suffix(length: int) -> str:
    return "".join(random.choices(_ALPHABET, k=length))


def generate_project_id() -> str:
    return f"{random.choice(_ADJECTIVES)}-{random.choice(_NOUNS)}-{_random_suffix(5)}"


def generate_request_id() -> str:
    return f"agent-{uuid.uuid4()}"


def generate_session_id() -> str:
    # [-9e18, 0)
    return str(random.randrange(-9 * 10**18, 0))


def generate_tool_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:24]}"


def generate_completion_id() -> str:
    return f"chatcmpl-{int(time.time() * 1000)}-{_random_suffix(7)}"
