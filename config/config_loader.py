"""Load settings.yaml into typed dataclasses."""

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from agent_council.models import RoleConfig

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

REVIEW_ROLES = ("architect", "sentinel", "optimizer", "maintainer")
COUNCIL_ROLES = ("moderator", *REVIEW_ROLES, "verifier")


@dataclass
class BackendConfig:
    name: str
    sdk: str                     # "openai" (any OpenAI-compatible server) or "anthropic"
    timeout_sec: int
    max_tokens: int
    api_key_env: str | None = None
    base_url: str | None = None
    temperature: float = 0.2
    max_retries: int = 2


@dataclass
class AgentConfig:
    model: str
    max_iterations: int
    system_prompt: str


@dataclass
class PromptsConfig:
    intake: str
    review: str
    debate: str
    verdict: str


@dataclass
class CouncilConfig:
    roles: dict[str, RoleConfig]
    prompts: PromptsConfig
    max_parallel_reviews: int = 4
    output_dir: Path = Path("./reviews")


@dataclass
class AppConfig:
    backend: BackendConfig
    agent: AgentConfig
    council: CouncilConfig


def _load_roles(roles_raw: dict) -> dict[str, RoleConfig]:
    roles: dict[str, RoleConfig] = {}
    for role, role_raw in roles_raw.items():
        roles[role] = RoleConfig(
            role=role,
            preferred_model=str(role_raw["preferred_model"]),
            fallback_models=tuple(str(m) for m in role_raw.get("fallback_models", [])),
            system_prompt=str(role_raw.get("system_prompt", "")),
        )
    missing = [r for r in COUNCIL_ROLES if r not in roles]
    if missing:
        logger.warning("Council roles not configured: %s", ", ".join(missing))
    return roles


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, KeyError if a required
    section is absent.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    backend_raw = raw["backend"]
    backend = BackendConfig(
        name=str(backend_raw["name"]),
        sdk=str(backend_raw["sdk"]),
        timeout_sec=int(backend_raw["timeout_sec"]),
        max_tokens=int(backend_raw["max_tokens"]),
        api_key_env=backend_raw.get("api_key_env"),
        base_url=backend_raw.get("base_url"),
        temperature=float(backend_raw.get("temperature", 0.2)),
        max_retries=int(backend_raw.get("max_retries", 2)),
    )

    agent_raw = raw["agent"]
    agent = AgentConfig(
        model=str(agent_raw["model"]),
        max_iterations=int(agent_raw.get("max_iterations", 10)),
        system_prompt=str(agent_raw["system_prompt"]),
    )

    council_raw = raw["council"]
    prompts_raw = council_raw["prompts"]
    council = CouncilConfig(
        roles=_load_roles(council_raw["roles"]),
        prompts=PromptsConfig(
            intake=prompts_raw["intake"],
            review=prompts_raw["review"],
            debate=prompts_raw["debate"],
            verdict=prompts_raw["verdict"],
        ),
        max_parallel_reviews=int(council_raw.get("max_parallel_reviews", 4)),
        output_dir=Path(council_raw.get("output_dir", "./reviews")),
    )

    logger.debug("Loaded settings from %s (backend=%s)", settings_path, backend.name)
    return AppConfig(backend=backend, agent=agent, council=council)
