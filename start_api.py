#!/usr/bin/env python3
"""
Startup script for The Elite Vibe marketplace API.

This script starts uvicorn with the host, port and log level from the environment.
"""

import sys

import uvicorn

from model_marketplace.config import Settings


def main():
    """Start the FastAPI application."""
    settings = Settings.from_env()

    print(f"Starting {settings.app_name} API on {settings.host}:{settings.port}")
    print(f"API Documentation: http://{settings.host}:{settings.port}/docs")
    print(f"Health Check: http://{settings.host}:{settings.port}/health")

    try:
        uvicorn.run(
            "model_marketplace.api.main:app",
            host=settings.host,
            port=settings.port,
            reload=settings.debug,
            log_level=settings.log_level.lower(),
            access_log=True,
        )
    except ImportError as e:
        print(f"Failed to import FastAPI app: {e}")
        print("Make sure the package is installed with `pip install -e .`")
        sys.exit(1)


if __name__ == "__main__":
    main()
