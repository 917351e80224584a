"""WBSMatch configuration.

Every setting comes from the environment (a ``.env`` file is honoured);
each nested config reads its own slice so it can be built on its own.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

DEFAULT_GRAPHQL_URL = "https://developer.api.autodesk.com/aec/graphql"


def _env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).strip().lower() in {"1", "true", "yes"}


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass
class DBConfig:
    """Where WBS sets and match runs are stored."""

    url: str
    pool_size: int = 10
    pool_max_overflow: int = 20
    pool_timeout: int = 30
    echo: bool = False

    @classmethod
    def from_env(cls) -> DBConfig:
        """Raises KeyError when DATABASE_URL is unset."""
        url = os.environ.get("DATABASE_URL")
        if not url:
            raise KeyError(
                "DATABASE_URL environment variable is required "
                "(e.g. sqlite+aiosqlite:///./wbsmatch.db)"
            )
        return cls(
            url=url,
            pool_size=_env_int("DB_POOL_SIZE", 10),
            pool_max_overflow=_env_int("DB_POOL_MAX_OVERFLOW", 20),
            pool_timeout=_env_int("DB_POOL_TIMEOUT", 30),
            echo=_env_bool("DB_ECHO"),
        )


@dataclass
class AecConfig:
    """AEC Data Model GraphQL service settings."""

    graphql_url: str = DEFAULT_GRAPHQL_URL
    access_token: str | None = None
    page_limit: int = 200
    request_timeout_s: float = 45.0
    retry_attempts: int = 3
    retry_delay_s: float = 0.35  # multiplied by the attempt number
    category_aliases: dict[str, list[str]] = field(
        default_factory=lambda: {
            "Curtain Panels / Mullions": [
                "CurtainPanels",
                "CurtainPanel",
                "CurtainWallMullions",
                "CurtainMullions",
                "CurtainPanelsMullions",
            ],
        }
    )

    @classmethod
    def from_env(cls) -> AecConfig:
        return cls(
            graphql_url=os.getenv("AEC_GRAPHQL_URL", DEFAULT_GRAPHQL_URL),
            access_token=os.getenv("APS_ACCESS_TOKEN") or None,
            page_limit=_env_int("AEC_PAGE_LIMIT", 200),
            request_timeout_s=_env_float("AEC_REQUEST_TIMEOUT_S", 45.0),
            retry_attempts=_env_int("AEC_RETRY_ATTEMPTS", 3),
            retry_delay_s=_env_float("AEC_RETRY_DELAY_S", 0.35),
        )


@dataclass
class MatchingConfig:
    """Matching algorithm thresholds."""

    description_match_threshold: float = 0.45
    ambiguous_gap_threshold: float = 0.05
    exact_match_confidence: float = 1.0
    prefix_match_confidence: float = 0.9
    wbs_max_level: int = 8

    @classmethod
    def from_env(cls) -> MatchingConfig:
        return cls(
            description_match_threshold=_env_float("DESCRIPTION_MATCH_THRESHOLD", 0.45),
            ambiguous_gap_threshold=_env_float("AMBIGUOUS_GAP_THRESHOLD", 0.05),
            prefix_match_confidence=_env_float("PREFIX_MATCH_CONFIDENCE", 0.9),
            wbs_max_level=_env_int("WBS_MAX_LEVEL", 8),
        )


@dataclass
class AppConfig:
    db: DBConfig
    log_level: str = "INFO"
    log_format: str = "text"  # json or text
    aec: AecConfig = field(default_factory=AecConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Build the full configuration.

        Only DATABASE_URL is required; APS_ACCESS_TOKEN is needed by the
        commands that talk to the AEC service.

        Raises:
            KeyError: If DATABASE_URL is missing
        """
        return cls(
            db=DBConfig.from_env(),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format="json" if _env_bool("JSON_LOGS") else "text",
            aec=AecConfig.from_env(),
            matching=MatchingConfig.from_env(),
        )


_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Process-wide configuration, read from the environment on first use."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next call re-reads the environment."""
    global _config
    _config = None
