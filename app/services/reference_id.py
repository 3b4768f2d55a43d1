from __future__ import annotations

import re
import secrets

RANDOM_PREFIX = "RND"
SEPARATOR = "-"


def _phone_part(phone: str | None) -> str | None:
    digits = re.sub(r"\D", "", phone or "")
    return digits[-4:] if digits else None


def _email_part(email: str | None) -> str | None:
    local = (email or "").strip().split("@", 1)[0]
    return local[:4].upper() if local else None


def _title_deed_part(title_deed: str | None) -> str | None:
    compact = re.sub(r"\s+", "", title_deed or "")
    return compact or None


def derive_reference_id(
    *,
    phone: str | None = None,
    email: str | None = None,
    title_deed: str | None = None,
) -> str | None:
    """
    Deterministic reference from owner contact details, e.g. "3456-MARI-0/1234".
    Returns None when none of the inputs is present.
    """
    parts = [p for p in (_phone_part(phone), _email_part(email), _title_deed_part(title_deed)) if p]
    if not parts:
        return None
    return SEPARATOR.join(parts)


def random_reference_id() -> str:
    return f"{RANDOM_PREFIX}{SEPARATOR}{secrets.token_hex(5).upper()}"


def resolve_reference_id(
    explicit: str | None = None,
    *,
    phone: str | None = None,
    email: str | None = None,
    title_deed: str | None = None,
) -> str:
    if explicit and explicit.strip():
        return explicit.strip()
    return derive_reference_id(phone=phone, email=email, title_deed=title_deed) or random_reference_id()
