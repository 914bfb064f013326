import pytest

from copilot.core.prompts import PromptService
from copilot.core.router import ProviderRouter
from copilot.core.session import ChatSessionService
from copilot.models.base import BaseProvider, ProviderCapability
from copilot.models.fal_provider import FalProvider
from copilot.models.openai_provider import OpenAIProvider
from copilot.storage.memory import InMemoryPromptRepository, InMemorySessionRepository
from copilot.types import Capability, ProviderType


class MockTestProvider(BaseProvider):
    type = ProviderType.TEST
    default_capabilities = tuple(
        ProviderCapability(cap, ("test",)) for cap in Capability
    )

    def _build_client(self, api_key):
        return {"api_key": api_key}


@pytest.fixture
def prompt_service():
    return PromptService(InMemoryPromptRepository())


@pytest.fixture
def session_service(prompt_service):
    return ChatSessionService(prompt_service, InMemorySessionRepository())


@pytest.fixture
def router():
    router = ProviderRouter()
    router.register_provider(OpenAIProvider(api_key="1"))
    router.register_provider(FalProvider(api_key="1"))
    return router


@pytest.fixture
def hello_prompt(prompt_service):
    prompt_service.set("prompt", "model", [{"role": "system", "content": "hello {{word}}"}])
    return "prompt"


@pytest.fixture
def session_id(session_service, hello_prompt):
    return session_service.create(
        doc_id="test",
        workspace_id="test",
        user_id="user-1",
        prompt_name=hello_prompt,
    )
