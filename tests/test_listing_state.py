import pytest

from app.services.listing_state import InvalidStatusTransition, can_transition, ensure_transition, is_publishable


@pytest.mark.parametrize("current,target", [
    ("draft", "queued"),
    ("queued", "uploading"),
    ("uploading", "uploaded"),
    ("uploading", "failed"),
    ("failed", "queued"),
])
def test_allowed_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize("current,target", [
    ("draft", "uploading"),
    ("draft", "uploaded"),
    ("queued", "uploaded"),
    ("uploaded", "queued"),
    ("failed", "uploaded"),
])
def test_rejected_transitions(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidStatusTransition):
        ensure_transition("lst_1", current, target)


def test_only_draft_and_failed_are_publishable():
    assert [s for s in ("draft", "queued", "uploading", "uploaded", "failed") if is_publishable(s)] == ["draft", "failed"]
