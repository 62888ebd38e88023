#!/usr/bin/env python3
"""Run the Atelier Portfolio API server.

Usage:
    python run_server.py                 # host/port from settings (ATELIER_HOST, ATELIER_PORT)
    python run_server.py --port 8080     # override the port

Configuration comes from ATELIER_* environment variables or a .env file.
"""
import argparse
import logging
import sys
from pathlib import Path

import uvicorn

sys.path.insert(0, str(Path(__file__).resolve().parent))

from api.app import create_app
from settings import Settings

logger = logging.getLogger("run_server")


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--host", default=None, help="Bind address (default: settings.host)")
    parser.add_argument("--port", type=int, default=None, help="Port (default: settings.port)")
    args = parser.parse_args()

    settings = Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )

    host = args.host or settings.host
    port = args.port or settings.port
    logger.info("=== Atelier Portfolio on %s:%d ===", host, port)
    logger.info("  Storage: %s", settings.storage_mode)
    logger.info("  Cloud:   %s", settings.cloudinary_cloud_name or "not configured")
    logger.info("  Cache:   %s", settings.cache_path)

    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
