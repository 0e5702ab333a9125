"""
Application state: configuration plus the embedding cache.

AppState is created once (usually by the CLI) and passed to the components
that need it. Nothing is persisted implicitly: callers invoke save() or
save_cache() after a mutation.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional

from .cache import EmbeddingCache
from .config import (
    ProviderConfig,
    StoreConfig,
    get_config_dir,
    load_or_create_config,
    save_config,
)
from .errors import ConfigurationError
from .gateway import AIGateway
from .notes import NoteStore, VaultNoteStore

logger = logging.getLogger(__name__)

CACHE_FILENAME = "embeddings.json"

GatewayFactory = Callable[[ProviderConfig], AIGateway]


def load_cache(store_path: Path) -> EmbeddingCache:
    """Load the cache blob from a store directory (empty if absent or unreadable)."""
    cache_path = Path(store_path) / CACHE_FILENAME
    if not cache_path.exists():
        return EmbeddingCache()
    try:
        with open(cache_path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Cannot read %s (%s), starting with an empty cache", cache_path, e)
        return EmbeddingCache()
    return EmbeddingCache.from_dict(data)


def write_cache(store_path: Path, cache: EmbeddingCache) -> None:
    """Write the cache blob atomically (temp file + rename)."""
    store_path = Path(store_path)
    store_path.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".embeddings-", suffix=".tmp", dir=store_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(cache.to_dict(), f)
        os.replace(tmp, store_path / CACHE_FILENAME)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class AppState:
    """
    Explicitly owned application state.

    Example:
        state = AppState.load()
        gateway = state.gateway()
        notes = state.note_store()
        ...
        state.save()
    """

    def __init__(
        self,
        config: StoreConfig,
        cache: Optional[EmbeddingCache] = None,
        *,
        gateway_factory: Optional[GatewayFactory] = None,
        note_store: Optional[NoteStore] = None,
    ):
        self.config = config
        self.cache = cache if cache is not None else EmbeddingCache()
        self._gateway_factory = gateway_factory or AIGateway.from_config
        self._gateway: Optional[AIGateway] = None
        self._gateway_key: Optional[tuple] = None
        self._retired: list[AIGateway] = []
        self._note_store = note_store

    @classmethod
    def load(
        cls,
        store_path: Optional[Path] = None,
        **kwargs,
    ) -> "AppState":
        """Load (or create) the config and cache from a store directory."""
        path = Path(store_path).expanduser().resolve() if store_path else get_config_dir()
        config = load_or_create_config(path)
        cache = load_cache(path)
        logger.debug("Loaded store %s: %d cached embeddings", path, cache.size())
        return cls(config, cache, **kwargs)

    @property
    def store_path(self) -> Path:
        return self.config.path

    # -- Persistence --

    def save(self) -> None:
        """Persist both the configuration and the cache."""
        save_config(self.config)
        self.save_cache()

    def save_cache(self) -> None:
        write_cache(self.config.path, self.cache)

    # -- Collaborators --

    def gateway(self) -> AIGateway:
        """
        Gateway for the current provider configuration.

        Rebuilt whenever the provider configuration has changed since the
        last call, so a settings change is never served by a stale backend.

        Raises:
            ConfigurationError: provider misconfigured (e.g. missing API key)
        """
        key = self.config.provider.fingerprint()
        if self._gateway is None or key != self._gateway_key:
            if self._gateway is not None:
                self._retired.append(self._gateway)
            self._gateway = self._gateway_factory(self.config.provider)
            self._gateway_key = key
        return self._gateway

    def set_provider(self, name: str, params: Optional[dict] = None) -> None:
        """Switch provider. Takes effect on the next gateway() call."""
        self.config.provider = ProviderConfig(name, dict(params or {}))

    def note_store(self) -> NoteStore:
        """The vault to index. Raises ConfigurationError if none is configured."""
        if self._note_store is None:
            if self.config.vault_path is None:
                raise ConfigurationError(
                    "No vault configured. Pass --vault, set SECONDBRAIN_VAULT, "
                    "or add [vault] path to secondbrain.toml"
                )
            try:
                self._note_store = VaultNoteStore(self.config.vault_path)
            except NotADirectoryError as e:
                raise ConfigurationError(str(e)) from e
        return self._note_store

    def set_vault(self, path: Path) -> None:
        self.config.vault_path = Path(path).expanduser()
        self._note_store = None

    async def aclose(self) -> None:
        """Close network clients held by current and retired gateways."""
        gateways = self._retired + ([self._gateway] if self._gateway is not None else [])
        self._retired = []
        self._gateway = None
        self._gateway_key = None
        for gateway in gateways:
            await gateway.aclose()
