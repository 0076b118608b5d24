# paraphraser/conftest.py
import os

import pytest

os.environ.setdefault("ENV", "test")

from paraphraser.core import auth
from paraphraser.core.config import settings
from paraphraser.features.analytics import logbuffer, sink
from paraphraser.features.paraphrase import model_client
from paraphraser.tests.mocks import RecordingCollector, fake_groq_module


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Deterministic configuration for every test; restored afterwards."""
    monkeypatch.setattr(settings, "GROQ_API_KEY", "gsk_test")
    monkeypatch.setattr(settings, "HUMANIZE_MODE", "rewrite")
    monkeypatch.setattr(settings, "PARAPHRASE_STREAM_DEFAULT", False)
    monkeypatch.setattr(settings, "WORD_COUNT_TOLERANCE", 10)
    monkeypatch.setattr(settings, "WATCHMAN_OFF", False)
    monkeypatch.setattr(settings, "WATCHMAN_BASE_URL", "http://watchman.test")
    monkeypatch.setattr(settings, "WATCHMAN_PRODUCT", "tabs-editor-tool")
    monkeypatch.setattr(settings, "WATCHMAN_CAPTURE_MAX_BYTES", 0)
    monkeypatch.setattr(settings, "CLERK_SECRET_KEY", None)
    monkeypatch.setattr(settings, "CLERK_JWT_SECRET", None)
    monkeypatch.setattr(settings, "CLERK_ISSUER", None)
    monkeypatch.setattr(settings, "CLERK_JWKS_URL", None)
    monkeypatch.setattr(settings, "CLERK_AUDIENCE", None)
    logbuffer.current_log_buffer().drain()
    yield
    logbuffer.current_log_buffer().drain()


@pytest.fixture(autouse=True)
def collector():
    """Fake watchman collector; every test gets a fresh one."""
    recorder = RecordingCollector()
    sink.set_transport_for_tests(recorder.transport())
    yield recorder
    sink.set_transport_for_tests(None)


@pytest.fixture(autouse=True)
def no_clerk_network():
    yield
    auth.set_jwks_provider_for_tests(None)
    auth.set_http_transport_for_tests(None)


@pytest.fixture
def fake_groq(monkeypatch):
    """Install a fake groq module; call the returned function to reconfigure it."""

    def install(tokens=None, error=None, fail_after=None):
        module = fake_groq_module(tokens=tokens, error=error, fail_after=fail_after)
        monkeypatch.setattr(model_client, "groq", module)
        return module.AsyncGroq

    monkeypatch.setattr(model_client, "_clients", {})
    install()
    return install
