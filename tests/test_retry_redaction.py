from app.services.redaction import REDACTED, redact_payload
from app.services.retry import compute_backoff_seconds, should_retry


def test_backoff_grows_and_is_capped():
    assert 10 <= compute_backoff_seconds(1) <= 13
    assert 40 <= compute_backoff_seconds(3) <= 53
    assert compute_backoff_seconds(20) <= 900 + 30


def test_permanent_errors_are_never_retried():
    assert not should_retry("CONFIG_ERROR", 0)
    assert not should_retry("VALIDATION_ERROR", 0)
    assert should_retry("CIRCUIT_OPEN", 0)
    assert not should_retry("TIMEOUT", 5)


def test_redaction_walks_nested_structures():
    payload = {"data": [{"Authorization": "Bearer x", "ok": 1}], "client_secret": "s", "keep": {"a": "b"}}

    out = redact_payload(payload, extra_keys={"OK"})

    assert out == {"data": [{"Authorization": REDACTED, "ok": REDACTED}], "client_secret": REDACTED, "keep": {"a": "b"}}
    assert payload["client_secret"] == "s"
