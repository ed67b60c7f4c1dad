"""
Shared configuration for the memory graph engine.
"""

from __future__ import annotations

import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("memgraph")


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


def _derive_effective_vector_backend(db_backend: str, vector_backend: str) -> str:
    if vector_backend not in {"pgvector", "none"}:
        return "none"
    if db_backend != "postgres":
        return "none"
    return vector_backend


# Database settings
DB_BACKEND = os.environ.get("DB_BACKEND", "postgres").strip().lower()
VECTOR_BACKEND = os.environ.get("VECTOR_BACKEND", "pgvector").strip().lower()
SQLITE_PATH = os.environ.get("SQLITE_PATH", "/data/memgraph.db")
DATABASE_URL = os.environ.get("DATABASE_URL")
VECTOR_BACKEND_EFFECTIVE = _derive_effective_vector_backend(DB_BACKEND, VECTOR_BACKEND)

# Database initialization controls
AUTO_CREATE_EXTENSIONS = _get_bool("AUTO_CREATE_EXTENSIONS", True)
AUTO_MIGRATE_ON_STARTUP = _get_bool("AUTO_MIGRATE_ON_STARTUP", True)

# Embedding settings
EMBEDDING_PROVIDER = os.environ.get("EMBEDDING_PROVIDER", "openai").strip().lower()
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
EMBEDDING_API_BASE = os.environ.get("EMBEDDING_API_BASE", "https://api.openai.com/v1").rstrip("/")
EMBEDDING_MODEL = os.environ.get("EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_DIM = _get_int("EMBEDDING_DIM", 1536)
MAX_EMBEDDING_TEXT_LENGTH = _get_int("MEMGRAPH_MAX_EMBEDDING_TEXT_LENGTH", 8000)

# Embedding retry/backoff
EMBEDDING_TIMEOUT_SECONDS = _get_float("EMBEDDING_TIMEOUT_SECONDS", 30.0)
EMBEDDING_RETRY_MAX = _get_int("EMBEDDING_RETRY_MAX", 2)
EMBEDDING_RETRY_BACKOFF_SECONDS = _get_float("EMBEDDING_RETRY_BACKOFF_SECONDS", 0.5)
EMBEDDING_RETRY_JITTER_SECONDS = _get_float("EMBEDDING_RETRY_JITTER_SECONDS", 0.25)
EMBEDDING_FAILURE_THRESHOLD = _get_int("EMBEDDING_FAILURE_THRESHOLD", 5)
EMBEDDING_COOLDOWN_SECONDS = _get_int("EMBEDDING_COOLDOWN_SECONDS", 60)
EMBEDDING_HEALTHCHECK_ENABLED = _get_bool("EMBEDDING_HEALTHCHECK_ENABLED", True)

# Engine timeouts
STORAGE_TIMEOUT_SECONDS = _get_float("STORAGE_TIMEOUT_SECONDS", 10.0)
ACTIVATION_TIMEOUT_SECONDS = _get_float("ACTIVATION_TIMEOUT_SECONDS", 30.0)

# Request/input limits
MAX_RESULT_LIMIT = _get_int("MEMGRAPH_MAX_RESULT_LIMIT", 100)
MAX_HOPS_LIMIT = _get_int("MEMGRAPH_MAX_HOPS", 6)
MAX_QUERY_LENGTH = _get_int("MEMGRAPH_MAX_QUERY_LENGTH", 4000)
MAX_TEXT_LENGTH = _get_int("MEMGRAPH_MAX_TEXT_LENGTH", 8000)
MAX_LABEL_LENGTH = _get_int("MEMGRAPH_MAX_LABEL_LENGTH", 255)
MAX_TYPE_LENGTH = _get_int("MEMGRAPH_MAX_TYPE_LENGTH", 50)
MAX_RELATION_LENGTH = _get_int("MEMGRAPH_MAX_RELATION_LENGTH", 100)
MAX_METADATA_BYTES = _get_int("MEMGRAPH_MAX_METADATA_BYTES", 20000)
MAX_INGEST_ITEMS = _get_int("MEMGRAPH_MAX_INGEST_ITEMS", 50)

# Strength, weight & decay
STRENGTH_INITIAL = 1.0
STRENGTH_MIN = 0.01
STRENGTH_MAX = 2.0
TOUCH_INCREMENT = _get_float("TOUCH_INCREMENT", 0.05)
WEIGHT_INITIAL = 1.0
WEIGHT_MAX = 3.0
UPSERT_WEIGHT_INCREMENT = _get_float("UPSERT_WEIGHT_INCREMENT", 0.1)
STRENGTHEN_WEIGHT_INCREMENT = _get_float("STRENGTHEN_WEIGHT_INCREMENT", 0.05)
DECAY_FACTOR = _get_float("DECAY_FACTOR", 0.995)
DECAY_GRACE_SECONDS = _get_int("DECAY_GRACE_SECONDS", 3600)
DECAY_INTERVAL_SECONDS = _get_int("DECAY_INTERVAL_SECONDS", 3600)
CORE_CATEGORY = "core"

# Spreading activation
HOP_DECAY_BASE = _get_float("HOP_DECAY_BASE", 0.5)
DEFAULT_TOP_K = 20
DEFAULT_MAX_HOPS = 3
REINFORCE_TOUCH_LIMIT = _get_int("REINFORCE_TOUCH_LIMIT", 10)

# Ingestion
INGEST_MERGE_THRESHOLD = _get_float("INGEST_MERGE_THRESHOLD", 0.92)
INGEST_LINK_THRESHOLD = _get_float("INGEST_LINK_THRESHOLD", 0.8)


def validate_and_prepare_config() -> None:
    """Validate configuration and apply derived settings at startup."""
    global DATABASE_URL, VECTOR_BACKEND_EFFECTIVE

    errors = []
    if DB_BACKEND not in {"postgres", "sqlite"}:
        errors.append("DB_BACKEND must be 'postgres' or 'sqlite'")

    if VECTOR_BACKEND not in {"pgvector", "none"}:
        errors.append("VECTOR_BACKEND must be 'pgvector' or 'none'")

    if DB_BACKEND == "sqlite" and VECTOR_BACKEND == "pgvector":
        logger.warning(
            "VECTOR_BACKEND=pgvector requires postgres; similarity is computed in-process."
        )

    if EMBEDDING_PROVIDER not in {"openai", "none"}:
        errors.append("EMBEDDING_PROVIDER must be 'openai' or 'none'")

    if EMBEDDING_DIM <= 0:
        errors.append("EMBEDDING_DIM must be positive")

    # Store updates only clamp at one end; out-of-range knobs would trip the table checks
    if not 0.0 < DECAY_FACTOR <= 1.0:
        errors.append("DECAY_FACTOR must be in (0, 1]")
    for name, value in (
        ("TOUCH_INCREMENT", TOUCH_INCREMENT),
        ("UPSERT_WEIGHT_INCREMENT", UPSERT_WEIGHT_INCREMENT),
        ("STRENGTHEN_WEIGHT_INCREMENT", STRENGTHEN_WEIGHT_INCREMENT),
    ):
        if value < 0:
            errors.append(f"{name} must not be negative")
    if not 0.0 < HOP_DECAY_BASE <= 1.0:
        errors.append("HOP_DECAY_BASE must be in (0, 1]")

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

    VECTOR_BACKEND_EFFECTIVE = _derive_effective_vector_backend(DB_BACKEND, VECTOR_BACKEND)

    if VECTOR_BACKEND_EFFECTIVE == "pgvector":
        from memgraph.models import PGVECTOR_AVAILABLE

        if not PGVECTOR_AVAILABLE:
            errors.append("pgvector package is required when VECTOR_BACKEND=pgvector")

    if errors:
        raise RuntimeError("Configuration invalid: " + "; ".join(errors))
