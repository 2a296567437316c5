"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No login/session logic
- No behavioral constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import DEFAULT_SERVER_HOST, DEFAULT_SERVER_PORT


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default) == "1"


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the server and the per-connection gateway.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------

    server_host: str
    server_port: int

    # ------------------------------------------------------------------
    # Login behavior
    # ------------------------------------------------------------------

    # When False the default tag template set is empty, so new accounts
    # start without tags.
    seed_default_tags: bool

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if SERVER_PORT is not an integer.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            enable_json_logs=_env_flag("ENABLE_JSON_LOGS", "1"),

            server_host=os.environ.get("SERVER_HOST", DEFAULT_SERVER_HOST),
            server_port=int(os.environ.get("SERVER_PORT", str(DEFAULT_SERVER_PORT))),

            seed_default_tags=_env_flag("SEED_DEFAULT_TAGS", "1"),
        )
