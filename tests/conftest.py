import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import openai
import pytest

from report_assist.services.client_loader import reset_client

PROVIDER_URL = "https://api.openai.com/v1/chat/completions"


@pytest.fixture(autouse=True)
def _isolate_client_cache():
    reset_client()
    yield
    reset_client()


# The app logging config stops propagation at "report_assist"; caplog listens on root
@pytest.fixture(autouse=True)
def _propagate_app_logs(monkeypatch):
    for name in ("report_assist", "report_assist.services"):
        monkeypatch.setattr(logging.getLogger(name), "propagate", True)


# Fixture factory for non-streaming completion responses (choices -> message -> content)
@pytest.fixture
def make_completion():
    def _make_completion(content):
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    return _make_completion


# Fixture factory for streamed responses: one chunk per delta, optional failure at the end
@pytest.fixture
def make_stream():
    def _make_stream(deltas, error: Exception | None = None):
        async def _stream():
            for delta in deltas:
                if delta is None:
                    yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=None))])
                else:
                    yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=delta))])
            if error is not None:
                raise error

        return _stream()

    return _make_stream


@pytest.fixture
def fake_provider():
    """Stand-in for AsyncOpenAI exposing the calls the client makes."""
    return SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=AsyncMock())),
        models=SimpleNamespace(list=AsyncMock(return_value=SimpleNamespace(data=[]))),
        close=AsyncMock(),
    )


@pytest.fixture
def no_sleep():
    return AsyncMock()


@pytest.fixture
def status_error():
    def _status_error(status: int, message: str = "provider error") -> openai.APIStatusError:
        response = httpx.Response(status, request=httpx.Request("POST", PROVIDER_URL))
        return openai.APIStatusError(message, response=response, body=None)

    return _status_error


@pytest.fixture
def provider_request():
    return httpx.Request("POST", PROVIDER_URL)
