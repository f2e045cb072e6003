"""Configuration system for Block Buddy.

Loads settings from a YAML file (``block-buddy.yaml`` by default), supports
environment variable expansion, and falls back to environment variables for
the secrets that should never live in a checked-in file.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


DEFAULT_CONFIG_NAME = "block-buddy.yaml"

# ---------------------------------------------------------------------------
# Environment-variable expansion helper
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


def _expand_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with their environment values.

    If the variable is not set the placeholder is left as-is so that
    validation can catch it later.
    """

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))

    return _ENV_VAR_RE.sub(_replace, value)


def _expand_env_recursive(obj: object) -> object:
    """Walk an arbitrary nested structure and expand env vars in strings."""
    if isinstance(obj, str):
        return _expand_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _expand_env_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# Pydantic v2 models
# ---------------------------------------------------------------------------


class CipherConfig(BaseModel):
    """Secret-at-rest encryption settings."""

    passphrase: str = ""            # ${BLOCK_BUDDY_ENCRYPTION_KEY}
    time_cost: int = 3
    memory_cost: int = 65536        # KiB (64 MB)
    parallelism: int = 4


class StoreConfig(BaseModel):
    """Where identities and wallet records live."""

    backend: str = "sqlite"         # "sqlite" or "hasura"
    sqlite_path: str = "block-buddy.db"
    hasura_endpoint: str = "https://block-buddy.hasura.app/v1/graphql"
    hasura_admin_secret: str = ""   # ${HASURA_ADMIN_SECRET}
    timeout_seconds: float = 15.0


class ChainOverride(BaseModel):
    """Per-chain settings layered over the built-in chain table."""

    rpc_url: Optional[str] = None


class ChainsConfig(BaseModel):
    default_chain: str = "ethereum"
    receipt_timeout_seconds: float = 120.0
    overrides: dict[str, ChainOverride] = Field(default_factory=dict)


class LoggingConfig(BaseModel):
    level: str = "INFO"


class BuddyConfig(BaseModel):
    """Root configuration object."""

    cipher: CipherConfig = Field(default_factory=CipherConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    chains: ChainsConfig = Field(default_factory=ChainsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def rpc_url_for(self, chain_name: str, default: str) -> str:
        override = self.chains.overrides.get(chain_name)
        if override is not None and override.rpc_url:
            return override.rpc_url
        return default


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------

def _apply_env_fallbacks(config: BuddyConfig) -> BuddyConfig:
    """Fill secrets left blank in the file from well-known env vars."""
    if not config.cipher.passphrase:
        config.cipher.passphrase = os.environ.get("BLOCK_BUDDY_ENCRYPTION_KEY", "")
    if not config.store.hasura_admin_secret:
        config.store.hasura_admin_secret = os.environ.get("HASURA_ADMIN_SECRET", "")
    rpc = os.environ.get("ALCHEMY_URL")
    if rpc and "ethereum" not in config.chains.overrides:
        config.chains.overrides["ethereum"] = ChainOverride(rpc_url=rpc)
    return config


def load_config(path: Path | None = None) -> BuddyConfig:
    """Load and validate configuration from a YAML file.

    Environment variable placeholders (``${VAR}``) are expanded before
    validation. A missing file yields the defaults plus env fallbacks.
    """
    if path is None:
        path = Path.cwd() / DEFAULT_CONFIG_NAME
    raw_data: dict = {}
    if path.exists():
        raw_data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    expanded = _expand_env_recursive(raw_data)
    return _apply_env_fallbacks(BuddyConfig.model_validate(expanded))


def save_config(config: BuddyConfig, path: Path) -> None:
    """Serialize a :class:`BuddyConfig` to a YAML file, minus secrets."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="python", exclude_none=True)
    data["cipher"]["passphrase"] = "${BLOCK_BUDDY_ENCRYPTION_KEY}"
    data["store"]["hasura_admin_secret"] = "${HASURA_ADMIN_SECRET}"
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, sort_keys=False)


def configure_logging(level: int | str = logging.INFO) -> None:
    """Install a single console handler on the ``block_buddy`` logger."""
    logger = logging.getLogger("block_buddy")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    ))
    logger.addHandler(handler)
