import pytest

from core.logging_config import REDACTED, fingerprint, redact_secrets


def test_redact_secrets_masks_sensitive_keys():
    event = {
        "event": "callback_received",
        "s": "a" * 64,
        "secret_key": "shh",
        "FLOW_API_KEY": "k",
        "client_secret": "x",
        "token": "tk-visible",
        "payload": {"apiKey": "k", "nested": [{"signature": "sig"}], "amount": 50000},
    }

    out = redact_secrets(None, "info", dict(event))

    assert out["event"] == "callback_received"
    assert out["s"] == REDACTED
    assert out["secret_key"] == REDACTED
    assert out["FLOW_API_KEY"] == REDACTED
    assert out["client_secret"] == REDACTED
    assert out["token"] == "tk-visible"
    assert out["payload"]["apiKey"] == REDACTED
    assert out["payload"]["nested"][0]["signature"] == REDACTED
    assert out["payload"]["amount"] == 50000


def test_fingerprint_is_stable_and_short():
    fp = fingerprint("TK-123")
    assert fp == fingerprint("TK-123")
    assert fp != fingerprint("TK-124")
    assert len(fp) == 12
    assert "TK-123" not in fp
    assert fingerprint("") is None
    assert fingerprint(None) is None


class RecordingLogger:
    def __init__(self):
        self.entries = []

    def _record(self, event, **kw):
        self.entries.append({"event": event, **kw})

    info = warning = error = exception = debug = _record


@pytest.mark.asyncio
async def test_signature_failure_logs_only_fingerprint(monkeypatch, confirmation, make_order):
    from application.services import confirmation_service
    from domain.common.exceptions import SignatureMismatchException

    recorder = RecordingLogger()
    monkeypatch.setattr(confirmation_service, "logger", recorder)
    await make_order(token="TK-SECRET-TOKEN")

    with pytest.raises(SignatureMismatchException):
        await confirmation.handle_callback({"token": "TK-SECRET-TOKEN", "s": "f" * 64})

    assert recorder.entries == [{"event": "callback_signature_invalid", "token": fingerprint("TK-SECRET-TOKEN")}]


def test_request_body_sanitizer_masks_callback_fields():
    from api.middleware import LoggingMiddleware

    middleware = LoggingMiddleware(app=None, enable_body_log=True)
    clean = middleware._sanitize_data({"token": "TK-1", "s": "abc", "nested": [{"apiKey": "k"}], "price": "5000"})

    assert clean == {"token": "***", "s": "***", "nested": [{"apiKey": "***"}], "price": "5000"}
