import anthropic
import pytest
import requests
from openai import OpenAI

from copilot.models.anthropic_provider import AnthropicProvider
from copilot.models.base import ProviderCapability, parse_capabilities
from copilot.models.fal_provider import FalProvider, FalSession
from copilot.models.openai_provider import OpenAIProvider
from copilot.types import Capability, ProviderError


def test_openai_declared_capabilities():
    provider = OpenAIProvider()
    assert provider.supports(Capability.TEXT_TO_TEXT)
    assert provider.supports(Capability.TEXT_TO_TEXT, "gpt-4o")
    assert provider.supports(Capability.TEXT_TO_IMAGE, "dall-e-3")
    assert not provider.supports(Capability.TEXT_TO_IMAGE)
    assert not provider.supports(Capability.IMAGE_TO_IMAGE)


def test_missing_api_key_raises(monkeypatch):
    monkeypatch.delenv("FAL_KEY", raising=False)
    with pytest.raises(ProviderError):
        FalProvider().client()


def test_api_key_from_environment(monkeypatch):
    monkeypatch.setenv("FAL_KEY", "secret")
    session = FalProvider().client()
    assert isinstance(session, FalSession)
    assert isinstance(session, requests.Session)
    assert session.headers["Authorization"] == "Key secret"


def test_client_is_built_once():
    provider = OpenAIProvider(api_key="sk-test")
    client = provider.client()
    assert isinstance(client, OpenAI)
    assert provider.client() is client


def test_anthropic_client():
    client = AnthropicProvider(api_key="sk-ant").client()
    assert isinstance(client, anthropic.Anthropic)


def test_from_config_overrides_capabilities():
    provider = OpenAIProvider.from_config(
        {
            "api_key_env": "CUSTOM_KEY",
            "capabilities": {"text-to-text": [], "text-to-image": ["dall-e-2", "dall-e-3"]},
        }
    )
    assert provider.api_key_env == "CUSTOM_KEY"
    assert provider.capabilities == (
        ProviderCapability(Capability.TEXT_TO_TEXT),
        ProviderCapability(Capability.TEXT_TO_IMAGE, ("dall-e-2", "dall-e-3")),
    )


def test_parse_capabilities_rejects_unknown_tag():
    with pytest.raises(ValueError):
        parse_capabilities({"capabilities": {"text-to-video": []}}, ())


def test_parse_capabilities_defaults():
    defaults = (ProviderCapability(Capability.TEXT_TO_TEXT),)
    assert parse_capabilities({}, defaults) == list(defaults)


def test_fal_session_resolves_relative_urls(monkeypatch):
    captured = {}

    def fake_request(self, method, url, *args, **kwargs):
        captured.update(method=method, url=url, timeout=kwargs.get("timeout"))
        return requests.Response()

    monkeypatch.setattr(requests.Session, "request", fake_request)
    session = FalSession("k", "https://fal.run/")
    session.post("fal-ai/flux/dev", json={})
    assert captured == {"method": "POST", "url": "https://fal.run/fal-ai/flux/dev", "timeout": 60}
