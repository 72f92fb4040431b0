"""
Runtime configuration.

Values come from the process environment, optionally seeded from a ``.env``
file in the working directory. The API key of the selected environment is
mandatory; everything else has a default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from dotenv import find_dotenv, load_dotenv

# ------------------------
# Config / Constants
# ------------------------
DEFAULT_ENVIRONMENT = "sandbox"
DEFAULT_BASE_URL = "https://grid.squads.xyz"
API_PATH = "/api/grid/v1"

ENVIRONMENTS = ("sandbox", "production")
API_KEY_VARS = {
    "sandbox": "GRID_SANDBOX_API_KEY",
    "production": "GRID_PRODUCTION_API_KEY",
}
CLUSTERS = {
    "sandbox": "devnet",
    "production": "mainnet-beta",
}
CLUSTER_RPC = {
    "devnet": "https://api.devnet.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
}


class ConfigError(Exception):
    """Fatal configuration problem. ``hints`` are remediation lines for the user."""

    def __init__(self, message: str, hints: Sequence[str] = ()):
        super().__init__(message)
        self.hints = list(hints)


def _truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


@dataclass(frozen=True)
class Settings:
    environment: str
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    debug: bool = False
    rpc_url: Optional[str] = None

    @property
    def cluster(self) -> str:
        return CLUSTERS[self.environment]

    @property
    def solana_rpc_url(self) -> str:
        return self.rpc_url or CLUSTER_RPC[self.cluster]

    @property
    def api_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{API_PATH}"

    @property
    def masked_api_key(self) -> str:
        if len(self.api_key) <= 16:
            return "*" * len(self.api_key)
        return f"{self.api_key[:8]}...{self.api_key[-8:]}"

    @classmethod
    def from_env(cls, env: Mapping[str, str], debug: bool = False) -> "Settings":
        """Build settings from a mapping of environment variables.

        ``debug`` forces debug mode on (command-line flag); otherwise the
        ``DEBUG`` variable decides.
        """
        environment = (env.get("GRID_ENVIRONMENT") or DEFAULT_ENVIRONMENT).strip().lower()
        if environment not in ENVIRONMENTS:
            raise ConfigError(
                f"Unknown GRID_ENVIRONMENT: {environment!r}",
                [f"Set GRID_ENVIRONMENT to one of: {', '.join(ENVIRONMENTS)}"],
            )
        key_var = API_KEY_VARS[environment]
        api_key = (env.get(key_var) or "").strip()
        if not api_key:
            raise ConfigError(
                f"Missing API key for environment: {environment.upper()}",
                [
                    "Please set the following environment variable:",
                    f"   {key_var}",
                    "Copy .env.example to .env and add your API keys",
                ],
            )
        return cls(
            environment=environment,
            api_key=api_key,
            base_url=(env.get("GRID_BASE_URL") or DEFAULT_BASE_URL).strip(),
            debug=debug or _truthy(env.get("DEBUG")),
            rpc_url=(env.get("SOLANA_RPC_URL") or "").strip() or None,
        )


def load_settings(debug: bool = False, dotenv_path: Optional[str] = None) -> Settings:
    """Load ``.env`` (process variables win) and read settings from ``os.environ``."""
    load_dotenv(dotenv_path or find_dotenv(usecwd=True), override=False)
    return Settings.from_env(os.environ, debug=debug)
