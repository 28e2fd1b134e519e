"""
Parloir - Credential issuing service

Serves the token endpoint browser clients call before opening a realtime
connection, keeping the long-lived broker API key on the server.
"""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from parloir.config.settings import Settings, get_settings, load_config
from parloir.di import Container
from parloir.domain.exceptions import ParloirError
from parloir.presentation.api.dependencies import set_container
from parloir.presentation.api.middleware import (
    parloir_exception_handler,
    unhandled_exception_handler,
)
from parloir.presentation.api.routes import health_router, token_router
from parloir.reporter import SystemReporter


class ParloirApp:
    """
    Parloir application orchestrator.

    Responsibilities:
        - Initialize DI container
        - Setup FastAPI application (CORS, error handlers, routes)
        - Log lifecycle and configuration status
        - Run uvicorn server
    """

    def __init__(
        self,
        settings: Settings,
        container: Optional[Container] = None,
    ):
        """
        Initialize Parloir application.

        Args:
            settings: Application settings
            container: Optional prebuilt container (tests)
        """
        self.settings = settings

        self.reporter = container.reporter if container else self._create_reporter()
        self.container = container or Container(settings, reporter=self.reporter)

        self.app = self._create_app()

        # Set global container for FastAPI dependencies
        set_container(self.container)

        # Server instance (set during serve)
        self.server: Optional[uvicorn.Server] = None

        self.reporter.info(
            "Parloir initialized",
            context="Parloir",
            verbose_level=1,
        )

    def _create_reporter(self) -> SystemReporter:
        """
        Create SystemReporter instance.

        Returns:
            Configured SystemReporter
        """
        log_dir = None
        log_filename = None

        if self.settings.log_file:
            log_dir = os.path.dirname(self.settings.log_file) or "."
            log_filename = os.path.basename(self.settings.log_file)

        return SystemReporter(
            name="parloir",
            log_dir=log_dir,
            log_filename=log_filename,
            level=self.settings.log_level,
            verbose=2 if self.settings.DEBUG else 1,
        )

    def _create_app(self) -> FastAPI:
        """
        Create FastAPI application with lifespan management.

        Returns:
            Configured FastAPI application
        """

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            """Application lifespan context manager."""
            self._on_startup()
            yield
            self._on_shutdown()

        app = FastAPI(
            title=self.settings.APP_NAME,
            description="Scoped realtime credential issuer",
            version=self.settings.APP_VERSION,
            lifespan=lifespan,
        )

        # Browsers fetch the token from the chat page's origin
        app.add_middleware(
            CORSMiddleware,
            allow_origins=self.settings.cors_origins,
            allow_credentials=False,
            allow_methods=["GET"],
            allow_headers=["*"],
        )

        app.add_exception_handler(ParloirError, parloir_exception_handler)
        app.add_exception_handler(Exception, unhandled_exception_handler)

        app.include_router(token_router)
        app.include_router(health_router)

        return app

    def _on_startup(self) -> None:
        """Log configuration status at startup."""
        self.reporter.info(
            f"Parloir starting on {self.settings.host}:{self.settings.port}",
            context="Parloir",
            verbose_level=1,
        )

        if self.settings.api_key_configured:
            self.reporter.info(
                f"Issuing {self.settings.token_format} credentials for room "
                f"'{self.settings.room}' (ttl {self.settings.token_ttl_seconds}s)",
                context="Parloir",
                verbose_level=1,
            )
        else:
            # Not fatal: the token endpoint answers 500 until configured
            self.reporter.warning(
                "ABLY_API_KEY not set; token requests will fail",
                context="Parloir",
                verbose_level=0,
            )

    def _on_shutdown(self) -> None:
        """Log shutdown statistics."""
        self.reporter.info(
            f"Parloir stopped after issuing "
            f"{self.container.stats['credentials_issued']} credentials",
            context="Parloir",
            verbose_level=1,
        )

    async def serve(self) -> None:
        """
        Run server.

        Uses uvicorn.Server API for proper shutdown control.
        """
        config = uvicorn.Config(
            self.app,
            host=self.settings.host,
            port=self.settings.port,
            log_level=self.settings.log_level,
        )
        self.server = uvicorn.Server(config)
        await self.server.serve()

    def start(self) -> None:
        """
        Start Parloir server.

        Blocks until server is stopped.
        """
        asyncio.run(self.serve())


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application (ASGI factory for uvicorn --factory).

    Args:
        settings: Optional settings (loaded from config when omitted)

    Returns:
        FastAPI application
    """
    return ParloirApp(settings or get_settings()).app


def main():
    """
    Main entry point for Parloir.

    Loads configuration and starts the server.
    """
    import sys

    config = load_config()

    # Allow port override from command line
    if len(sys.argv) > 1:
        try:
            config.port = int(sys.argv[1])
        except ValueError:
            print(f"Invalid port: {sys.argv[1]}")
            sys.exit(1)

    app = ParloirApp(config)

    try:
        app.start()
    except KeyboardInterrupt:
        print("\nParloir stopped by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
