"""Configuration management for reactorai using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)


class LLMSettings(BaseModel):
    """LLM configuration for open-question answers."""

    model_config = ConfigDict(extra="ignore")

    model: str = "gpt-4o-mini"
    temperature: float = 0.4
    max_tokens: int = 600
    base_url: str = "https://api.openai.com/v1"


class LedgerSettings(BaseModel):
    """Ledger-data service configuration."""

    model_config = ConfigDict(extra="ignore")

    base_url: str = "https://api.thereactor.in/ledger"
    timeout: float = 15.0
    min_liquidity_usd: float = 10000.0  # pools below this need explicit confirmation
    cache_ttl: int = 300


class ConversationSettings(BaseModel):
    """Conversation lifecycle configuration."""

    model_config = ConfigDict(extra="ignore")

    idle_timeout_seconds: int = 1800  # 30 minutes
    sweep_interval_seconds: int = 60
    history_limit: int = 20
    llm_history_turns: int = 4


class DeploymentSettings(BaseModel):
    """Values stamped onto finished configurations."""

    model_config = ConfigDict(extra="ignore")

    coefficient: int = 1000
    rsc_funding: str = "0.05"
    destination_funding: dict[int, str] = Field(
        default_factory=lambda: {1: "0.03", 11155111: "0.03", 43114: "0.01"}
    )
    default_destination_funding: str = "0.03"

    def funding_for(self, chain_id: int) -> str:
        """Destination contract funding for a chain."""
        return self.destination_funding.get(chain_id, self.default_destination_funding)


class Settings(BaseSettings):
    """Main reactorai configuration.

    Configuration is loaded from:
    1. Environment variables (REACTORAI_* prefix)
    2. Config file (~/.reactorai/config.yml)
    3. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="REACTORAI_",
        env_nested_delimiter="__",
        extra="ignore",  # Ignore extra fields in config file
    )

    # Feature flags
    demo_mode: bool = Field(default=False, description="Serve built-in data instead of live lookups")

    # Nested settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    conversation: ConversationSettings = Field(default_factory=ConversationSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment variables win over the config file
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=get_config_path()),
            file_secret_settings,
        )


def get_config_path() -> Path:
    """Get the config file path."""
    return Path.home() / ".reactorai" / "config.yml"


def save_config_file(config: dict) -> None:
    """Save configuration to YAML file."""
    config_path = get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        yaml.safe_dump(config, f, default_flow_style=False)


def create_default_config() -> None:
    """Write a config file holding the defaults if none exists."""
    config_path = get_config_path()
    if not config_path.exists():
        save_config_file(Settings().model_dump(mode="json", exclude={"demo_mode"}))


@lru_cache
def get_settings() -> Settings:
    """Get the application settings (cached).

    Loads from environment variables and config file.
    """
    return Settings()


def reset_settings_cache() -> None:
    """Clear the settings cache to reload configuration."""
    get_settings.cache_clear()
