import uuid

LISTING_PREFIX = "lst"
ATTEMPT_PREFIX = "att"
CORRELATION_PREFIX = "cor"


def gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def new_correlation_id() -> str:
    # short enough to read out to support, shown in user-facing messages
    return f"{CORRELATION_PREFIX}_{uuid.uuid4().hex[:12]}"
