"""
Main application factory for dirserve
"""

import argparse
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI

from . import __version__
from .api import setup_api_routes
from .browse import setup_browse_routes
from .cache import MetadataCache
from .config import load_config, validate_config, ConfigError, DEFAULT_CONFIG_PATH
from .metrics import MetricsManager
from .middleware import setup_middleware
from .models import Config


logger = logging.getLogger(__name__)


def setup_logging(config: Config):
    """Setup logging configuration"""
    log_config = config.logging

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_config.level.upper(), logging.INFO))

    # Clear existing handlers
    root_logger.handlers.clear()

    # Create formatter
    if log_config.json:
        formatter = logging.Formatter(
            '{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","msg":"%(message)s"}'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler if configured
    if log_config.file:
        log_file = Path(log_config.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=log_config.max_size_mb * 1024 * 1024,
            backupCount=log_config.backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def create_app(config: Optional[Config] = None, config_path: Optional[str] = None) -> FastAPI:
    """Create FastAPI application"""

    # Load configuration
    # If not provided explicitly, fall back to env or default
    if config is None:
        if not config_path:
            config_path = os.getenv("DIRSERVE_CONFIG", DEFAULT_CONFIG_PATH)
        config = load_config(config_path)
    validate_config(config)

    # Setup logging
    setup_logging(config)

    # Create FastAPI app
    app = FastAPI(
        title="dirserve",
        description="Static file server with directory listings",
        version=__version__,
        docs_url="/docs" if os.getenv("DIRSERVE_DEBUG") else None,
        redoc_url="/redoc" if os.getenv("DIRSERVE_DEBUG") else None,
        openapi_url="/openapi.json" if os.getenv("DIRSERVE_DEBUG") else None,
    )

    # Shared state for request handlers
    app.state.config = config
    app.state.cache = MetadataCache(ttl=config.cache.ttl)
    app.state.metrics = MetricsManager()

    # Setup custom middleware
    setup_middleware(app)

    # Health and metrics endpoints live under their own prefix so they never
    # shadow served files
    if config.metrics.enabled:
        prefix = config.metrics.prefix.rstrip("/")

        @app.get(f"{prefix}/healthz")
        async def health_check():
            return {"ok": True, "version": __version__}

        @app.get(f"{prefix}/metrics")
        async def get_metrics():
            metrics = app.state.metrics.get_metrics()
            metrics["cache"] = app.state.cache.stats()
            return metrics

    # Setup routes, catch-all browse route last
    setup_api_routes(app)
    setup_browse_routes(app)

    # Startup event
    @app.on_event("startup")
    async def startup_event():
        app.state.cache.start()
        scheme = "https" if config.server.tls.enabled else "http"
        logger.info(f"dirserve serving {config.root} on {scheme}://{config.server.addr}:{config.server.port}")
        logger.info(f"Cache TTL: {config.cache.ttl}s")
        logger.info(f"TLS: {'enabled' if config.server.tls.enabled else 'disabled'}")

    # Shutdown event
    @app.on_event("shutdown")
    async def shutdown_event():
        await app.state.cache.stop()
        logger.info("dirserve shutdown complete")

    return app


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="dirserve file server")
    parser.add_argument("--config", "-c", default=os.getenv("DIRSERVE_CONFIG", DEFAULT_CONFIG_PATH),
                        help="Configuration file path")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    parser.add_argument("--dir", "-d", default=None, help="Base directory to serve")
    parser.add_argument("--cache-ttl", type=float, default=None, help="Cache TTL in seconds")
    parser.add_argument("--cert", default=None, help="TLS certificate file")
    parser.add_argument("--key", default=None, help="TLS key file")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    """Load the config file and apply command line overrides"""
    config = load_config(args.config)

    if args.host:
        config.server.addr = args.host
    if args.port:
        config.server.port = args.port
    if args.dir:
        config.root = Path(args.dir).resolve()
    if args.cache_ttl is not None:
        config.cache.ttl = args.cache_ttl
    if args.cert and args.key:
        config.server.tls.enabled = True
        config.server.tls.certfile = args.cert
        config.server.tls.keyfile = args.key
    if args.debug:
        config.logging.level = "DEBUG"

    return validate_config(config)


def main(argv=None):
    """Main entry point for running the server"""
    args = parse_args(argv)

    # Set debug environment
    if args.debug:
        os.environ["DIRSERVE_DEBUG"] = "1"

    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"dirserve: {e}", file=sys.stderr)
        sys.exit(2)

    app = create_app(config)

    # SSL context
    ssl_keyfile = None
    ssl_certfile = None
    if config.server.tls.enabled:
        ssl_keyfile = config.server.tls.keyfile
        ssl_certfile = config.server.tls.certfile

    # Run server
    uvicorn.run(
        app,
        host=config.server.addr,
        port=config.server.port,
        ssl_keyfile=ssl_keyfile,
        ssl_certfile=ssl_certfile,
        timeout_keep_alive=int(config.server.keepAliveTimeout),
        timeout_graceful_shutdown=int(config.server.shutdownTimeout),
        log_config=None,  # Keep the handlers installed by setup_logging
        access_log=False,  # We handle access logging ourselves
        server_header=False,
    )


if __name__ == "__main__":
    main()
