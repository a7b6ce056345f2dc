"""Config loading for Folio.

Reads `.folio/config.yaml` (or `~/.folio/config.yaml`).
Raises SystemExit on parse errors or a missing `version` field.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided, for testing or explicit override)
  2. FOLIO_CONFIG environment variable (if set)
  3. `.folio/config.yaml` (working directory, for development)
  4. `~/.folio/config.yaml` (home directory, for production deployments)

Environment variable overrides (applied last, always win):
  FOLIO_PORT                    server.port
  FOLIO_ENV                     server.environment (development | production | test;
                                defaults to production)
  ALLOWED_ORIGINS               server.allowed_origins (comma-separated)
  RATE_LIMIT_ENABLED            rate_limit.enabled
  RATE_LIMIT_<CLASS>_MAX        rate_limit.<class>.max_requests  (CLASS: API, AUTH, AI, PUBLIC)
  RATE_LIMIT_<CLASS>_WINDOW     rate_limit.<class>.window_seconds
  FEATURE_AI_ENABLED            features.ai_enabled
  FEATURE_PUBLIC_PORTFOLIOS     features.public_portfolios
  GROQ_MODEL                    ai.model
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import NoReturn, Optional

import yaml

from app.constants import (
    DEFAULT_AI_BASE_URL,
    DEFAULT_AI_MAX_TOKENS,
    DEFAULT_AI_MODEL,
    DEFAULT_AI_TEMPERATURE,
    SESSION_COOKIE_NAME,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# ─── Validation sets ─────────────────────────────────────────────────────────

VALID_ENVIRONMENTS: frozenset[str] = frozenset({"development", "production", "test"})

# Route classes that carry their own rate-limit policy
RATE_LIMIT_CLASSES: tuple[str, ...] = ("api", "auth", "ai", "public")

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})

DEFAULT_CONFIG_PATHS = [
    ".folio/config.yaml",
    os.path.expanduser("~/.folio/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class RateLimitPolicy:
    """Limit tuple for one route class.

    per_user: key requests by caller identity when one resolves, else by IP.
    """

    max_requests: int
    window_seconds: int
    per_user: bool = True


def _default_policies() -> dict[str, RateLimitPolicy]:
    return {
        "api": RateLimitPolicy(max_requests=100, window_seconds=60, per_user=True),
        "auth": RateLimitPolicy(max_requests=10, window_seconds=60, per_user=False),
        "ai": RateLimitPolicy(max_requests=20, window_seconds=60, per_user=True),
        "public": RateLimitPolicy(max_requests=30, window_seconds=60, per_user=False),
    }


# AI routes are always keyed per user, public routes always per IP.
_FIXED_SCOPES: dict[str, bool] = {"ai": True, "public": False}


@dataclass
class RateLimitConfig:
    """Rate limiting switch, key prefix and per-class policies."""

    enabled: bool = True
    key_prefix: str = "rl"
    policies: dict[str, RateLimitPolicy] = field(default_factory=_default_policies)

    def policy(self, route_class: str) -> RateLimitPolicy:
        """Return the policy for a route class. Raises KeyError on unknown classes."""
        return self.policies[route_class]


@dataclass
class FeatureFlags:
    ai_enabled: bool = True
    public_portfolios: bool = True


@dataclass
class AIConfig:
    """Completion provider settings. The API key is read from GROQ_API_KEY only."""

    model: str = DEFAULT_AI_MODEL
    base_url: str = DEFAULT_AI_BASE_URL
    timeout_seconds: float = 30.0
    max_retries: int = 2
    temperature: float = DEFAULT_AI_TEMPERATURE
    max_tokens: int = DEFAULT_AI_MAX_TOKENS


@dataclass
class StorageConfig:
    """Local SQLite storage path (used when Supabase is not configured)."""

    path: str = "~/.folio/folio.db"


@dataclass
class AuthConfig:
    session_cookie: str = SESSION_COOKIE_NAME


@dataclass
class ServerConfig:
    """HTTP binding and environment."""

    host: str = "127.0.0.1"
    port: int = 8000
    environment: str = "production"
    allowed_origins: list[str] = field(default_factory=lambda: ["*"])

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@dataclass
class Config:
    """Root configuration object populated from .folio/config.yaml.

    All fields have safe defaults. Folio can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    server: ServerConfig = field(default_factory=ServerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    features: FeatureFlags = field(default_factory=FeatureFlags)
    ai: AIConfig = field(default_factory=AIConfig)
    path: Optional[str] = None

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are ignored.

        Raises:
            SystemExit(1): On an invalid server.environment or an unknown
                           rate-limit route class.
        """
        # ── Server ────────────────────────────────────────────────────────────
        server_raw = raw.get("server", {}) or {}
        environment = server_raw.get("environment", "production")
        if environment not in VALID_ENVIRONMENTS:
            _fail(
                f"CONFIG ERROR: Invalid server.environment: '{environment}'. "
                f"Supported values: {sorted(VALID_ENVIRONMENTS)}."
            )
        origins = server_raw.get("allowed_origins", ["*"])
        if isinstance(origins, str):
            origins = _split_origins(origins)
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=server_raw.get("port", 8000),
            environment=environment,
            allowed_origins=list(origins),
        )

        # ── Storage / auth ────────────────────────────────────────────────────
        storage_raw = raw.get("storage", {}) or {}
        storage = StorageConfig(path=storage_raw.get("path", "~/.folio/folio.db"))

        auth_raw = raw.get("auth", {}) or {}
        auth = AuthConfig(session_cookie=auth_raw.get("session_cookie", SESSION_COOKIE_NAME))

        # ── Rate limiting ─────────────────────────────────────────────────────
        rl_raw = raw.get("rate_limit", {}) or {}
        policies = _default_policies()
        for route_class, policy_raw in (rl_raw.get("policies", {}) or {}).items():
            if route_class not in policies:
                _fail(
                    f"CONFIG ERROR: Unknown rate_limit route class: '{route_class}'. "
                    f"Supported values: {list(RATE_LIMIT_CLASSES)}."
                )
            current = policies[route_class]
            policies[route_class] = RateLimitPolicy(
                max_requests=policy_raw.get("max_requests", current.max_requests),
                window_seconds=policy_raw.get("window_seconds", current.window_seconds),
                per_user=_FIXED_SCOPES.get(
                    route_class, policy_raw.get("per_user", current.per_user)
                ),
            )
        rate_limit = RateLimitConfig(
            enabled=rl_raw.get("enabled", True),
            key_prefix=rl_raw.get("key_prefix", "rl"),
            policies=policies,
        )

        # ── Features ──────────────────────────────────────────────────────────
        features_raw = raw.get("features", {}) or {}
        features = FeatureFlags(
            ai_enabled=features_raw.get("ai_enabled", True),
            public_portfolios=features_raw.get("public_portfolios", True),
        )

        # ── AI ────────────────────────────────────────────────────────────────
        ai_raw = raw.get("ai", {}) or {}
        ai = AIConfig(
            model=ai_raw.get("model", DEFAULT_AI_MODEL),
            base_url=ai_raw.get("base_url", DEFAULT_AI_BASE_URL),
            timeout_seconds=ai_raw.get("timeout_seconds", 30.0),
            max_retries=ai_raw.get("max_retries", 2),
            temperature=ai_raw.get("temperature", DEFAULT_AI_TEMPERATURE),
            max_tokens=ai_raw.get("max_tokens", DEFAULT_AI_MAX_TOKENS),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            server=server,
            storage=storage,
            auth=auth,
            rate_limit=rate_limit,
            features=features,
            ai=ai,
            path=path,
        )


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate Folio configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes the error to stderr and raises SystemExit(1).
    Environment overrides are applied in both cases.

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, invalid values, or an invalid env override.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("FOLIO_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    # ── No config file found ─────────────────────────────────────────────────
    if found_path is None:
        logger.info("config_defaults_used", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    # ── Parse config file ─────────────────────────────────────────────────────
    logger.info("config_loading", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _fail(
            f"CONFIG ERROR: Failed to parse {found_path}: {exc}\n"
            "Folio refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _fail(f"CONFIG ERROR: Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _fail(
                f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _fail(
            f"CONFIG ERROR: {found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    # ── Version validation ────────────────────────────────────────────────────
    version = raw.get("version")
    if version is None:
        _fail(
            f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _fail(
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.server.environment == "production" and "*" in config.server.allowed_origins:
        logger.warning(
            "cors_wildcard_in_production",
            message="ALLOWED_ORIGINS is '*' in production. Restrict it to your frontend origin.",
        )

    logger.info(
        "config_loaded",
        path=found_path,
        version=config.version,
        environment=config.server.environment,
        rate_limit_enabled=config.rate_limit.enabled,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Called for both file-loaded and default configs so env vars always
    take precedence over any file value.

    Raises:
        SystemExit(1): If a numeric or boolean override cannot be parsed, or
                       FOLIO_ENV names an unknown environment.
    """
    env_port = os.environ.get("FOLIO_PORT")
    if env_port is not None:
        config.server.port = _env_int("FOLIO_PORT", env_port)

    env_name = os.environ.get("FOLIO_ENV")
    if env_name is not None:
        if env_name not in VALID_ENVIRONMENTS:
            _fail(
                f"CONFIG ERROR: FOLIO_ENV must be one of {sorted(VALID_ENVIRONMENTS)}, "
                f"got '{env_name}'"
            )
        config.server.environment = env_name

    origins = os.environ.get("ALLOWED_ORIGINS")
    if origins is not None:
        config.server.allowed_origins = _split_origins(origins)

    enabled = os.environ.get("RATE_LIMIT_ENABLED")
    if enabled is not None:
        config.rate_limit.enabled = _env_bool("RATE_LIMIT_ENABLED", enabled)

    for route_class in RATE_LIMIT_CLASSES:
        policy = config.rate_limit.policies[route_class]
        max_name = f"RATE_LIMIT_{route_class.upper()}_MAX"
        window_name = f"RATE_LIMIT_{route_class.upper()}_WINDOW"
        if (value := os.environ.get(max_name)) is not None:
            policy.max_requests = _env_int(max_name, value)
        if (value := os.environ.get(window_name)) is not None:
            policy.window_seconds = _env_int(window_name, value)

    ai_flag = os.environ.get("FEATURE_AI_ENABLED")
    if ai_flag is not None:
        config.features.ai_enabled = _env_bool("FEATURE_AI_ENABLED", ai_flag)

    public_flag = os.environ.get("FEATURE_PUBLIC_PORTFOLIOS")
    if public_flag is not None:
        config.features.public_portfolios = _env_bool("FEATURE_PUBLIC_PORTFOLIOS", public_flag)

    model = os.environ.get("GROQ_MODEL")
    if model:
        config.ai.model = model


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _fail(msg: str) -> NoReturn:
    print(msg, file=sys.stderr)
    raise SystemExit(1)


def _split_origins(value: str) -> list[str]:
    return [origin.strip() for origin in value.split(",") if origin.strip()] or ["*"]


def _env_int(name: str, value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        _fail(f"CONFIG ERROR: {name} environment variable is not a valid integer: '{value}'")
    if parsed <= 0:
        _fail(f"CONFIG ERROR: {name} must be a positive integer, got '{value}'")
    return parsed


def _env_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    _fail(f"CONFIG ERROR: {name} environment variable is not a valid boolean: '{value}'")
