"""
Graph database: engine, session factory and schema migrations.

``init_db`` connects, brings the schema to head and hands back a
``GraphDatabase``; the app builds its graph store from that object instead
of reaching into module state.
"""

from __future__ import annotations

import os
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

import memgraph.config as config
from memgraph.services.graph_store import SqlGraphStore

logger = config.logger

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def alembic_config(url: str):
    try:
        from alembic.config import Config
    except ImportError as exc:
        raise RuntimeError("Alembic is required for migrations") from exc

    alembic_cfg = Config(os.path.join(BASE_DIR, "alembic.ini"))
    alembic_cfg.set_main_option("script_location", os.path.join(BASE_DIR, "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", url)
    return alembic_cfg


class GraphDatabase:
    """One SQLAlchemy engine for the node/edge tables and the sessions over it."""

    def __init__(self, url: str, *, backend: str, vector_backend: str):
        self.url = url
        self.backend = backend
        self.vector_backend = vector_backend
        engine_kwargs = {"pool_pre_ping": True}
        if backend == "sqlite":
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        self.engine = create_engine(url, **engine_kwargs)
        self.session_factory = sessionmaker(bind=self.engine)

    @property
    def uses_pgvector(self) -> bool:
        return self.backend == "postgres" and self.vector_backend == "pgvector"

    def ensure_vector_extension(self) -> None:
        # Vector columns in the first migration need the extension in place
        if not self.uses_pgvector:
            logger.info("Skipping pgvector extension creation")
            return
        logger.info("Ensuring pgvector extension...")
        with self.engine.connect() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            conn.commit()

    def schema_revisions(self) -> tuple[Optional[str], Optional[str]]:
        from alembic.runtime.migration import MigrationContext
        from alembic.script import ScriptDirectory

        script = ScriptDirectory.from_config(alembic_config(self.url))
        head_revision = script.get_current_head()
        with self.engine.connect() as conn:
            current_revision = MigrationContext.configure(conn).get_current_revision()
        return current_revision, head_revision

    def migrate(self, auto_migrate: bool) -> None:
        from alembic import command

        current_rev, head_rev = self.schema_revisions()
        if current_rev == head_rev:
            return
        if not auto_migrate:
            raise RuntimeError(
                f"Graph schema out of date (current={current_rev}, expected={head_rev}). "
                "Run 'alembic upgrade head' or set AUTO_MIGRATE_ON_STARTUP=true for dev."
            )
        logger.info("graph_schema_upgrade", extra={"from_revision": current_rev, "to_revision": head_rev})
        command.upgrade(alembic_config(self.url), "head")
        if self.schema_revisions()[0] != head_rev:
            raise RuntimeError("Graph schema migration did not reach expected revision")

    def graph_store(self) -> SqlGraphStore:
        return SqlGraphStore(self.session_factory, dimension=config.EMBEDDING_DIM)

    def health(self) -> dict:
        """Connectivity, pgvector presence and schema revision, for the health routes."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
                ext_version = None
                if self.uses_pgvector:
                    ext_version = conn.execute(
                        text("SELECT extversion FROM pg_extension WHERE extname = 'vector'")
                    ).scalar()
            current_rev, head_rev = self.schema_revisions()
        except Exception as exc:
            return {"ok": False, "error": str(exc)}

        schema_ok = head_rev is None or current_rev == head_rev
        pgvector_ok = bool(ext_version) or not self.uses_pgvector
        return {
            "ok": schema_ok and pgvector_ok,
            "pgvector_installed": bool(ext_version) if self.uses_pgvector else None,
            "pgvector_version": ext_version,
            "schema_revision": current_rev,
            "schema_expected": head_rev,
            "schema_up_to_date": schema_ok,
        }

    def dispose(self) -> None:
        self.engine.dispose()


def init_db() -> GraphDatabase:
    """Validate config, connect, and bring the graph schema to head."""
    config.validate_and_prepare_config()

    logger.info("Connecting to database...")
    database = GraphDatabase(
        config.DATABASE_URL,
        backend=config.DB_BACKEND,
        vector_backend=config.VECTOR_BACKEND_EFFECTIVE,
    )
    if config.AUTO_CREATE_EXTENSIONS:
        database.ensure_vector_extension()
    database.migrate(config.AUTO_MIGRATE_ON_STARTUP)
    logger.info("Database initialized")
    return database


__all__ = ["GraphDatabase", "alembic_config", "init_db"]
