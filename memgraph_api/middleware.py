"""
Middleware and error mapping for the standalone FastAPI app.
"""

from __future__ import annotations

import os

from fastapi import Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware

import memgraph.config as config
from memgraph.errors import (
    EmbeddingUnavailable,
    NotFound,
    StorageUnavailable,
    ValidationIssue,
)

STORAGE_RETRY_AFTER_SECONDS = 5


def configure_middleware(app):
    """Configure host allowlist and CORS middleware for the FastAPI app."""
    # Optional host allowlist for production deployments
    trusted_hosts_env = os.environ.get("TRUSTED_HOSTS", "")
    trusted_hosts = [host.strip() for host in trusted_hosts_env.split(",") if host.strip()]
    if trusted_hosts:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=trusted_hosts,
        )

    cors_allowed_env = os.environ.get("CORS_ALLOWED_ORIGINS", "")
    if cors_allowed_env.strip():
        allow_origins = [origin.strip() for origin in cors_allowed_env.split(",") if origin.strip()]
    else:
        allow_origins = [
            os.environ.get("FRONTEND_URL", "http://localhost:3000"),
            "http://localhost:3000",
        ]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


async def _validation_issue_handler(request: Request, exc: ValidationIssue):
    config.logger.info(
        "request_validation_error",
        extra={"path": request.url.path, "field": exc.field, "error_type": exc.error_type},
    )
    return JSONResponse(
        status_code=400,
        content={"error": str(exc), "field": exc.field, "error_type": exc.error_type},
    )


async def _not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"error": str(exc)})


async def _embedding_unavailable_handler(request: Request, exc: EmbeddingUnavailable):
    return JSONResponse(status_code=503, content={"error": str(exc), "dependency": "embedding_provider"})


async def _storage_unavailable_handler(request: Request, exc: StorageUnavailable):
    headers = {"Retry-After": str(STORAGE_RETRY_AFTER_SECONDS)} if exc.retryable else None
    return JSONResponse(
        status_code=503,
        content={"error": str(exc), "dependency": "graph_store", "retryable": exc.retryable},
        headers=headers,
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(ValidationIssue, _validation_issue_handler)
    app.add_exception_handler(NotFound, _not_found_handler)
    app.add_exception_handler(EmbeddingUnavailable, _embedding_unavailable_handler)
    app.add_exception_handler(StorageUnavailable, _storage_unavailable_handler)
