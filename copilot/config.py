"""
Configuration loading and service assembly.

The configuration is stored in a YAML file. Secrets such as API keys
are normally not stored in it; providers read them from the environment
variable named by `api_key_env` when a client is first built.

The `build_*` helpers turn the loaded mapping into the object graph used
by the CLI and by embedding applications: a provider router, the prompt
and session repositories, and the services on top of them.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Tuple, Type, Union

import yaml

from copilot.core.prompts import PromptService
from copilot.core.router import ProviderRouter
from copilot.core.session import ChatSessionService
from copilot.models.anthropic_provider import AnthropicProvider
from copilot.models.base import BaseProvider
from copilot.models.fal_provider import FalProvider
from copilot.models.openai_provider import OpenAIProvider
from copilot.storage.base import PromptRepository, SessionRepository
from copilot.storage.memory import InMemoryPromptRepository, InMemorySessionRepository
from copilot.storage.sqlite import SqliteDatabase, SqlitePromptRepository, SqliteSessionRepository

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: Dict[str, Type[BaseProvider]] = {
    "openai": OpenAIProvider,
    "fal": FalProvider,
    "anthropic": AnthropicProvider,
}


SECTION_TYPES: Dict[str, type] = {
    "providers": dict,
    "prompts": dict,
    "routing": list,
    "storage": dict,
    "logging": dict,
}


def load_app_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read the YAML configuration and check the shape of its known sections.

    Empty sections (`providers:` with nothing under it) are normalized to
    empty containers so the builders can iterate them directly.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the top level is not a mapping, or a known section
            has the wrong type.
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"Config file not found at: {config_path}")

    data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{config_path}: top-level configuration must be a mapping.")

    for section, expected in SECTION_TYPES.items():
        value = data.get(section)
        if value is None:
            if section in data:
                data[section] = expected()
            continue
        if not isinstance(value, expected):
            kind = "a mapping" if expected is dict else "a list"
            raise ValueError(f"{config_path}: section '{section}' must be {kind}.")

    logger.debug("Loaded configuration from %s (sections: %s)", config_path, sorted(data))
    return data


def build_provider_router(cfg: Dict[str, Any]) -> ProviderRouter:
    """
    Register every enabled provider and the explicit routing rules.

    Providers are registered in the order they appear under `providers:`,
    which is also the order their declared capabilities are consulted.
    """
    router = ProviderRouter()
    providers_cfg = cfg.get("providers", {}) or {}

    for name, pcfg in providers_cfg.items():
        pcfg = pcfg or {}
        if not pcfg.get("enabled", False):
            continue
        provider_cls = PROVIDER_CLASSES.get(name)
        if provider_cls is None:
            raise ValueError(f"Unknown provider '{name}' in configuration.")
        router.register_provider(provider_cls.from_config(pcfg))

    for rule in cfg.get("routing", []) or []:
        if "capability" not in rule or "provider" not in rule:
            raise ValueError("Routing rules require 'capability' and 'provider'.")
        models = rule.get("models") or rule.get("model") or ()
        if isinstance(models, str):
            models = (models,)
        router.add_rule(rule["capability"], rule["provider"], tuple(models))

    return router


def build_repositories(cfg: Dict[str, Any]) -> Tuple[PromptRepository, SessionRepository]:
    storage_cfg = cfg.get("storage", {}) or {}
    backend = storage_cfg.get("backend", "memory")

    if backend == "memory":
        return InMemoryPromptRepository(), InMemorySessionRepository()
    if backend == "sqlite":
        db = SqliteDatabase(storage_cfg.get("path", "copilot.db"))
        return SqlitePromptRepository(db), SqliteSessionRepository(db)
    raise ValueError(f"Unknown storage backend '{backend}'.")


@dataclass
class CopilotServices:
    prompts: PromptService
    sessions: ChatSessionService
    router: ProviderRouter


def build_services(cfg: Dict[str, Any]) -> CopilotServices:
    """Assemble router, repositories and services, then seed configured prompts."""
    prompt_repo, session_repo = build_repositories(cfg)
    prompts = PromptService(prompt_repo)
    seeded = prompts.load_from_config(cfg.get("prompts", {}) or {})
    if seeded:
        logger.info("Loaded %d prompts from configuration", seeded)
    return CopilotServices(
        prompts=prompts,
        sessions=ChatSessionService(prompts, session_repo),
        router=build_provider_router(cfg),
    )
