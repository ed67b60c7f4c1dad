"""
memgraph - associative memory graph service
Entry point: FastAPI + MCP over uvicorn
"""

import os

import uvicorn

from memgraph_api.main import asgi_app


def main() -> None:
    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8080"))
    uvicorn.run(asgi_app, host=host, port=port)


if __name__ == "__main__":
    main()
