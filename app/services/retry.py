import random

from app.services.errors import PERMANENT_CODES

MAX_PUBLISH_RETRIES = 5


def compute_backoff_seconds(attempt: int, base: int = 10, cap: int = 900) -> int:
    # exponential backoff with jitter
    exp = min(cap, base * (2 ** max(0, attempt - 1)))
    jitter = random.randint(0, min(30, exp // 3))
    return exp + jitter


def should_retry(error_code: str | None, retries_done: int, *, max_retries: int = MAX_PUBLISH_RETRIES) -> bool:
    if error_code is None or error_code in PERMANENT_CODES:
        return False
    return retries_done < max_retries
