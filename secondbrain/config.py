"""
Configuration management for secondbrain stores.

The configuration is stored as a TOML file in the store directory.
It specifies which AI provider to use, its parameters, where the vault
lives, and a few tuning knobs for indexing, related notes and chat.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomli_w


CONFIG_FILENAME = "secondbrain.toml"
CONFIG_VERSION = 1

DEFAULT_STORE_DIR = Path.home() / ".secondbrain"

DEFAULT_BATCH_SIZE = 5
DEFAULT_RELATED_LIMIT = 5
DEFAULT_RELATED_MIN_SIMILARITY = 0.5


@dataclass
class ProviderConfig:
    """Configuration for the AI provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)

    def fingerprint(self) -> tuple:
        """Hashable identity of this configuration, for change detection."""
        return (self.name, tuple(sorted((k, repr(v)) for k, v in self.params.items())))


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    provider: ProviderConfig = field(default_factory=lambda: ProviderConfig("ollama"))
    vault_path: Optional[Path] = None

    # Indexing
    batch_size: int = DEFAULT_BATCH_SIZE

    # Related notes
    related_limit: int = DEFAULT_RELATED_LIMIT
    related_min_similarity: float = DEFAULT_RELATED_MIN_SIMILARITY

    # Chat
    reset_usage_on_clear: bool = False

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME


def get_config_dir() -> Path:
    """Store directory: SECONDBRAIN_STORE_PATH or ~/.secondbrain."""
    env = os.environ.get("SECONDBRAIN_STORE_PATH")
    if env:
        return Path(env).expanduser().resolve()
    return DEFAULT_STORE_DIR


def openai_api_key_from_env() -> Optional[str]:
    return (
        os.environ.get("SECONDBRAIN_OPENAI_API_KEY")
        or os.environ.get("OPENAI_API_KEY")
    )


def detect_default_provider() -> ProviderConfig:
    """
    Detect the best default provider for the current environment.

    Priority:
    1. OpenAI (if an API key is available)
    2. Ollama on localhost (or OLLAMA_HOST)
    """
    if openai_api_key_from_env():
        return ProviderConfig("openai", {
            "model": "gpt-4o-mini",
            "embedding_model": "text-embedding-ada-002",
        })
    return ProviderConfig("ollama", {"model": "mistral"})


def create_default_config(store_path: Path) -> StoreConfig:
    """Create a new config with auto-detected defaults."""
    vault = os.environ.get("SECONDBRAIN_VAULT")
    return StoreConfig(
        path=store_path,
        provider=detect_default_provider(),
        vault_path=Path(vault).expanduser() if vault else None,
    )


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid config {config_path}: {e}") from e

    version = data.get("store", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    provider_section = dict(data.get("provider", {"name": "ollama"}))
    name = provider_section.pop("name", "")
    if not name:
        raise ValueError(f"Invalid config {config_path}: [provider] has no name")

    vault = data.get("vault", {}).get("path")
    indexing = data.get("indexing", {})
    related = data.get("related", {})
    chat = data.get("chat", {})

    batch_size = int(indexing.get("batch_size", DEFAULT_BATCH_SIZE))
    if batch_size < 1:
        raise ValueError(f"indexing.batch_size must be at least 1 (got {batch_size})")

    return StoreConfig(
        path=store_path,
        version=version,
        created=data.get("store", {}).get("created", ""),
        provider=ProviderConfig(name=name, params=provider_section),
        vault_path=Path(vault).expanduser() if vault else None,
        batch_size=batch_size,
        related_limit=int(related.get("limit", DEFAULT_RELATED_LIMIT)),
        related_min_similarity=float(related.get("min_similarity", DEFAULT_RELATED_MIN_SIMILARITY)),
        reset_usage_on_clear=bool(chat.get("reset_usage_on_clear", False)),
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    provider = {"name": config.provider.name}
    provider.update(config.provider.params)

    data: dict[str, Any] = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "provider": provider,
        "indexing": {"batch_size": config.batch_size},
        "related": {
            "limit": config.related_limit,
            "min_similarity": config.related_min_similarity,
        },
        "chat": {"reset_usage_on_clear": config.reset_usage_on_clear},
    }
    if config.vault_path is not None:
        data["vault"] = {"path": str(config.vault_path)}

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = create_default_config(store_path)
        save_config(config)
        return config
