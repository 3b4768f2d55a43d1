from __future__ import annotations

LISTING_STATUSES = ("draft", "queued", "uploading", "uploaded", "failed")

# failed -> queued is a republish; every republish gets a new upload attempt
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "draft": frozenset({"queued"}),
    "queued": frozenset({"uploading"}),
    "uploading": frozenset({"uploaded", "failed"}),
    "failed": frozenset({"queued"}),
    "uploaded": frozenset(),
}


class InvalidStatusTransition(Exception):
    def __init__(self, listing_id: str, current: str, target: str):
        super().__init__(f"Listing {listing_id}: cannot move from {current!r} to {target!r}")
        self.listing_id = listing_id
        self.current = current
        self.target = target


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(listing_id: str, current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidStatusTransition(listing_id, current, target)


def is_publishable(status: str) -> bool:
    return can_transition(status, "queued")
