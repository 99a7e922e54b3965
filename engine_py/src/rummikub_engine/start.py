#!/usr/bin/env python3
"""Startup script for Rummikub game backend"""

import uvicorn

from .config import Settings


def main():
    settings = Settings.from_env()

    print(f"Starting Rummikub Game Backend on {settings.host}:{settings.port}")
    print(f"Health check available at: http://{settings.host}:{settings.port}/health")
    print(f"Game API: http://{settings.host}:{settings.port}/api/game")

    uvicorn.run(
        "rummikub_engine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level
    )


if __name__ == "__main__":
    main()
