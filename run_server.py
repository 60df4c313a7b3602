#!/usr/bin/env python
"""
Server Entry Point

Starts the analytics API with Uvicorn.
Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py --workers 4
"""

import argparse
import os

import uvicorn

from grocery_analytics.config import get_settings


def run_dev_server(host: str, port: int):
    """Run development server with auto-reload."""
    uvicorn.run(
        "grocery_analytics.main:app",
        host=host,
        port=port,
        reload=True,
        reload_dirs=["grocery_analytics"],
        log_level="debug",
        access_log=True,
    )


def run_prod_server(host: str, port: int, workers: int):
    """Run production server with Uvicorn directly."""
    uvicorn.run(
        "grocery_analytics.main:app",
        host=host,
        port=port,
        workers=workers,
        log_level=get_settings().monitoring.log_level.lower(),
        access_log=True,
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
        date_header=True,
    )


if __name__ == "__main__":
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Grocery Storefront Analytics API Server")
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Run in development mode with auto-reload"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.api_port,
        help=f"Port to run on (default: {settings.api_port})"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=int(os.getenv("WORKERS", 1)),
        help="Worker processes in production mode"
    )

    args = parser.parse_args()

    if args.dev:
        print("Starting development server...")
        run_dev_server(settings.api_host, args.port)
    else:
        print(f"Starting production server with {args.workers} worker(s)...")
        run_prod_server(settings.api_host, args.port, args.workers)
