"""
Shared configuration for the SecondBrain store.
"""

from __future__ import annotations

import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("secondbrain")


def _get_bool(env_name: str, default: bool) -> bool:
    value = os.environ.get(env_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(env_name: str, default: int) -> int:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(env_name: str, default: float) -> float:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_list(env_name: str, default: list[str]) -> list[str]:
    value = os.environ.get(env_name, "")
    items = [item.strip() for item in value.split(",") if item.strip()]
    return items or default


def _derive_effective_backends(db_backend: str, vector_backend: str) -> tuple[str, str]:
    db_effective = db_backend if db_backend in {"postgres", "sqlite"} else "postgres"
    vector_effective = vector_backend if vector_backend in {"pgvector", "none"} else "none"
    if db_effective == "sqlite" and vector_effective == "pgvector":
        vector_effective = "none"
    return db_effective, vector_effective


# Database settings
DB_BACKEND = os.environ.get("DB_BACKEND", "postgres").strip().lower()
VECTOR_BACKEND = os.environ.get("VECTOR_BACKEND", "pgvector").strip().lower()
SQLITE_PATH = os.environ.get("SQLITE_PATH", "/data/secondbrain.db")
DATABASE_URL = os.environ.get("DATABASE_URL")
DB_BACKEND_EFFECTIVE, VECTOR_BACKEND_EFFECTIVE = _derive_effective_backends(
    DB_BACKEND,
    VECTOR_BACKEND,
)

# Database initialization controls
AUTO_CREATE_EXTENSIONS = _get_bool("AUTO_CREATE_EXTENSIONS", True)
AUTO_MIGRATE_ON_STARTUP = _get_bool("AUTO_MIGRATE_ON_STARTUP", True)

# Embedding settings
EMBEDDING_PROVIDER = os.environ.get("EMBEDDING_PROVIDER", "openai").strip().lower()
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
EMBEDDING_BASE_URL = os.environ.get("EMBEDDING_BASE_URL", "https://api.openai.com/v1").rstrip("/")
EMBEDDING_MODEL = os.environ.get("EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_DIM = _get_int("EMBEDDING_DIM", 1536)
EMBEDDING_MAX_INPUT_CHARS = _get_int("EMBEDDING_MAX_INPUT_CHARS", 32000)

# Provider retry/backoff
EMBEDDING_TIMEOUT_SECONDS = _get_float("EMBEDDING_TIMEOUT_SECONDS", 30.0)
EMBEDDING_RETRY_MAX = _get_int("EMBEDDING_RETRY_MAX", 2)
EMBEDDING_RETRY_BACKOFF_SECONDS = _get_float("EMBEDDING_RETRY_BACKOFF_SECONDS", 0.5)
EMBEDDING_RETRY_JITTER_SECONDS = _get_float("EMBEDDING_RETRY_JITTER_SECONDS", 0.25)
EMBEDDING_FAILURE_THRESHOLD = _get_int("EMBEDDING_FAILURE_THRESHOLD", 5)
EMBEDDING_COOLDOWN_SECONDS = _get_int("EMBEDDING_COOLDOWN_SECONDS", 60)
EMBEDDING_HEALTHCHECK_ENABLED = _get_bool("EMBEDDING_HEALTHCHECK_ENABLED", True)
EMBEDDING_BATCH_SIZE = _get_int("EMBEDDING_BATCH_SIZE", 20)
EMBEDDING_BATCH_DELAY_SECONDS = _get_float("EMBEDDING_BATCH_DELAY_SECONDS", 0.5)
EMBEDDING_BACKFILL_ENABLED = _get_bool("EMBEDDING_BACKFILL_ENABLED", True)
EMBEDDING_BACKFILL_INTERVAL_SECONDS = _get_int("EMBEDDING_BACKFILL_INTERVAL_SECONDS", 300)
EMBEDDING_BACKFILL_BATCH_LIMIT = _get_int("EMBEDDING_BACKFILL_BATCH_LIMIT", 50)

# Request/input limits
DEFAULT_LIST_LIMIT = _get_int("SECONDBRAIN_DEFAULT_LIST_LIMIT", 100)
MAX_RESULT_LIMIT = _get_int("SECONDBRAIN_MAX_RESULT_LIMIT", 200)
DEFAULT_SEARCH_LIMIT = _get_int("SECONDBRAIN_DEFAULT_SEARCH_LIMIT", 20)
MAX_QUERY_LENGTH = _get_int("SECONDBRAIN_MAX_QUERY_LENGTH", 4000)
MAX_TITLE_LENGTH = _get_int("SECONDBRAIN_MAX_TITLE_LENGTH", 500)
MAX_STATUS_LENGTH = _get_int("SECONDBRAIN_MAX_STATUS_LENGTH", 50)
MAX_SHORT_TEXT_LENGTH = _get_int("SECONDBRAIN_MAX_SHORT_TEXT_LENGTH", 255)
MAX_TEXT_LENGTH = _get_int("SECONDBRAIN_MAX_TEXT_LENGTH", 20000)
MAX_CONTENT_BYTES = _get_int("SECONDBRAIN_MAX_CONTENT_BYTES", 100000)

# Relation suggestions
SUGGEST_DEFAULT_LIMIT = _get_int("SUGGEST_DEFAULT_LIMIT", 5)
SUGGEST_DEFAULT_THRESHOLD = _get_float("SUGGEST_DEFAULT_THRESHOLD", 0.75)

# Activity log
ACTIVITY_LOG_ENABLED = _get_bool("ACTIVITY_LOG_ENABLED", True)
ACTIVITY_DEFAULT_WINDOW_DAYS = _get_int("ACTIVITY_DEFAULT_WINDOW_DAYS", 7)

# HTTP surface
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = _get_int("PORT", 8080)
TRUSTED_HOSTS = _get_list("TRUSTED_HOSTS", [])
CORS_ALLOWED_ORIGINS = _get_list(
    "CORS_ALLOWED_ORIGINS",
    [os.environ.get("FRONTEND_URL", "http://localhost:3000")],
)


def validate_and_prepare_config() -> None:
    """Validate configuration and apply derived settings at startup."""
    global DATABASE_URL, DB_BACKEND_EFFECTIVE, VECTOR_BACKEND_EFFECTIVE

    errors = []
    if DB_BACKEND not in {"postgres", "sqlite"}:
        errors.append("DB_BACKEND must be 'postgres' or 'sqlite'")

    if VECTOR_BACKEND not in {"pgvector", "none"}:
        errors.append("VECTOR_BACKEND must be 'pgvector' or 'none'")

    if DB_BACKEND == "sqlite" and VECTOR_BACKEND == "pgvector":
        errors.append("VECTOR_BACKEND=pgvector requires DB_BACKEND=postgres")

    if EMBEDDING_PROVIDER not in {"openai", "none"}:
        errors.append("EMBEDDING_PROVIDER must be 'openai' or 'none'")

    if EMBEDDING_DIM <= 0:
        errors.append("EMBEDDING_DIM must be positive")

    if not DATABASE_URL:
        if DB_BACKEND == "sqlite":
            if not SQLITE_PATH:
                errors.append("SQLITE_PATH environment variable is required for sqlite")
            else:
                DATABASE_URL = f"sqlite:///{SQLITE_PATH}"
        else:
            errors.append("DATABASE_URL environment variable is required")
    else:
        is_sqlite_url = DATABASE_URL.lower().startswith("sqlite")
        if DB_BACKEND == "sqlite" and not is_sqlite_url:
            errors.append("DATABASE_URL must be a sqlite URL when DB_BACKEND=sqlite")
        if DB_BACKEND == "postgres" and is_sqlite_url:
            errors.append("DATABASE_URL must be a postgres URL when DB_BACKEND=postgres")

    if EMBEDDING_PROVIDER == "openai" and not OPENAI_API_KEY:
        logger.warning(
            "OPENAI_API_KEY is not set; embeddings will be unavailable and search "
            "will fall back to keyword matching."
        )

    DB_BACKEND_EFFECTIVE, VECTOR_BACKEND_EFFECTIVE = _derive_effective_backends(
        DB_BACKEND,
        VECTOR_BACKEND,
    )

    if VECTOR_BACKEND_EFFECTIVE == "pgvector":
        from secondbrain.models import PGVECTOR_AVAILABLE

        if not PGVECTOR_AVAILABLE:
            errors.append("pgvector package is required when VECTOR_BACKEND=pgvector")

    if errors:
        raise RuntimeError("Configuration invalid: " + "; ".join(errors))
