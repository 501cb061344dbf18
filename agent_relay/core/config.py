"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. AgentConfig is built once at process start and handed to the
service; nothing else reads the environment.
"""

import os
import re
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

DEFAULT_STACK_BASE: str = "https://api.relevance.ai"

# Relative to the normalized api base (".../latest")
AGENT_TRIGGER_PATH: str = "/agents/trigger"

# Statuses the retry policy treats as transient
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})

BACKOFF_MULTIPLIER: float = 2.0

# Follow-up generator stops producing queries once depth exceeds this
MAX_FOLLOW_UP_DEPTH: int = 3

DEFAULT_CONVERSATION_ID: str = "default"


def normalize_stack_base(url: str) -> str:
    """Strip whitespace, trailing slashes and any trailing /latest segments."""
    normalized = (url or "").strip()
    normalized = re.sub(r"/+$", "", normalized)
    normalized = re.sub(r"/latest(/?latest)*$", "", normalized)
    return normalized


def build_api_base(stack_base: str) -> str:
    """Return the stack base with exactly one /latest suffix."""
    return f"{normalize_stack_base(stack_base)}/latest"


def _env_str(*names: str, default: str = "") -> str:
    """First non-empty value among the given env variable names."""
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


@dataclass
class AgentConfig:
    """Settings consumed by the agent communication service."""

    api_base_url: str = field(default_factory=lambda: build_api_base(DEFAULT_STACK_BASE))
    api_key: str = ""
    project_id: str = ""
    agent_id: str = ""
    conversation_id: str = DEFAULT_CONVERSATION_ID
    user_id: str = ""
    agent_version: str = "latest"

    # Recursion
    max_query_depth: int = 5
    max_queue_size: int = 20
    query_timeout_ms: int = 30000
    enable_auto_follow: bool = True
    enable_recursive_queries: bool = True
    max_follow_up_depth: int = MAX_FOLLOW_UP_DEPTH

    # Caching
    enable_caching: bool = True
    cache_ttl_ms: int = 5 * 60 * 1000
    max_cache_size: int = 100

    # Retries and admission
    max_retries: int = 3
    retry_delay_ms: int = 1000
    max_concurrent_requests: int = 5

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Read settings from the process environment (.env already loaded)."""
        stack_base = _env_str("RELEVANCE_STACK_BASE")
        api_base_url = (
            build_api_base(stack_base)
            if stack_base
            else _env_str("API_BASE_URL", default=build_api_base(DEFAULT_STACK_BASE))
        )
        return cls(
            api_base_url=api_base_url,
            api_key=_env_str("RELEVANCE_API_KEY", "API_KEY"),
            project_id=_env_str("RELEVANCE_PROJECT_ID", "PROJECT_ID"),
            agent_id=_env_str("RELEVANCE_AGENT_ID", "AGENT_ID"),
            conversation_id=_env_str(
                "RELEVANCE_CONVERSATION_ID", "CONVERSATION_ID", default=DEFAULT_CONVERSATION_ID
            ),
            user_id=_env_str("USER_ID"),
            agent_version=_env_str("AGENT_VERSION", default="latest"),
            max_query_depth=_env_int("MAX_QUERY_DEPTH", 5),
            max_queue_size=_env_int("MAX_QUEUE_SIZE", 20),
            query_timeout_ms=_env_int("QUERY_TIMEOUT_MS", 30000),
            enable_auto_follow=_env_bool("ENABLE_AUTO_FOLLOW", True),
            enable_recursive_queries=_env_bool("ENABLE_RECURSIVE_QUERIES", True),
            max_follow_up_depth=_env_int("MAX_FOLLOW_UP_DEPTH", MAX_FOLLOW_UP_DEPTH),
            enable_caching=_env_bool("ENABLE_CACHING", True),
            cache_ttl_ms=_env_int("CACHE_TTL_MS", 5 * 60 * 1000),
            max_cache_size=_env_int("MAX_CACHE_SIZE", 100),
            max_retries=_env_int("MAX_RETRIES", 3),
            retry_delay_ms=_env_int("RETRY_DELAY_MS", 1000),
            max_concurrent_requests=_env_int("MAX_CONCURRENT_REQUESTS", 5),
            log_level=_env_str("LOG_LEVEL", default="INFO").upper(),
        )

    def validate(self) -> list[str]:
        """Return a list of problems; empty when the config is usable."""
        errors: list[str] = []
        if not self.api_base_url:
            errors.append("api_base_url is required (set RELEVANCE_STACK_BASE)")
        if not self.api_key:
            errors.append("api_key is required (set RELEVANCE_API_KEY)")
        if not self.project_id:
            errors.append("project_id is required (set RELEVANCE_PROJECT_ID)")
        if not self.agent_id:
            errors.append("agent_id is required (set RELEVANCE_AGENT_ID)")

        if self.max_query_depth < 1:
            errors.append("max_query_depth must be at least 1")
        if self.max_queue_size < 1:
            errors.append("max_queue_size must be at least 1")
        if self.query_timeout_ms < 100:
            errors.append("query_timeout_ms must be at least 100")
        if self.max_retries < 1:
            errors.append("max_retries must be at least 1")
        if self.retry_delay_ms <= 0:
            errors.append("retry_delay_ms must be positive")
        if self.max_cache_size < 1:
            errors.append("max_cache_size must be at least 1")
        if self.max_concurrent_requests < 1:
            errors.append("max_concurrent_requests must be at least 1")
        return errors

    def is_valid(self) -> bool:
        return not self.validate()

    def missing_credentials(self) -> list[str]:
        """Names of the credentials a request cannot be sent without."""
        required = {"agent_id": self.agent_id, "project_id": self.project_id, "api_key": self.api_key}
        return [name for name, value in required.items() if not value]

    @property
    def trigger_endpoint(self) -> str:
        return f"{self.api_base_url.rstrip('/')}{AGENT_TRIGGER_PATH}"

    def summary(self) -> dict:
        """JSON-safe view of the config with secrets redacted."""
        return {
            "agent": {
                "id": self.agent_id,
                "version": self.agent_version,
                "api_url": self.api_base_url,
                "api_key": "***REDACTED***" if self.api_key else "",
            },
            "query": {
                "max_depth": self.max_query_depth,
                "max_queue_size": self.max_queue_size,
                "timeout_ms": self.query_timeout_ms,
                "auto_follow": self.enable_auto_follow,
                "max_follow_up_depth": self.max_follow_up_depth,
            },
            "caching": {
                "enabled": self.enable_caching,
                "ttl_ms": self.cache_ttl_ms,
                "max_size": self.max_cache_size,
            },
            "error_handling": {
                "max_retries": self.max_retries,
                "retry_delay_ms": self.retry_delay_ms,
            },
        }
