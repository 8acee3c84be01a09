import pytest

from llm.llm_client import LLMClient


class FakeProvider:
    name = "fake"

    def __init__(self, response_text: str):
        self._response_text = response_text
        self.prompts = []

    async def generate(self, *, system: str, user: str, model=None) -> str:
        self.prompts.append(user)
        return self._response_text


class ScriptedProvider:
    """Returns the scripted responses in order; an Exception entry is raised instead."""

    name = "scripted"

    def __init__(self, responses):
        self._responses = list(responses)
        self.prompts = []

    async def generate(self, *, system: str, user: str, model=None) -> str:
        self.prompts.append(user)
        if not self._responses:
            raise AssertionError("no scripted response left")
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class RaisingProvider:
    name = "raising"

    def __init__(self, error: Exception):
        self._error = error
        self.calls = 0

    async def generate(self, *, system: str, user: str, model=None) -> str:
        self.calls += 1
        raise self._error


@pytest.fixture
def fake_provider_factory():
    def _make(response_text: str):
        return FakeProvider(response_text)
    return _make


@pytest.fixture
def scripted_provider_factory():
    def _make(*responses):
        return ScriptedProvider(responses)
    return _make


@pytest.fixture
def raising_provider_factory():
    def _make(error: Exception):
        return RaisingProvider(error)
    return _make


@pytest.fixture
def client_for():
    def _make(provider, timeout_s: float = 5.0):
        return LLMClient(provider=provider, timeout_s=timeout_s)
    return _make
