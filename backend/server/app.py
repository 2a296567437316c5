"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (account registry, logging switch)
- Register routes
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adapters.memory import LocalAccounts
from config import AppConfig
from observability import logger

from server.routes import register_routes


def create_app(config: AppConfig | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    App factory pattern:
    - Testing with explicit configurations
    - Environment-specific setup
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()

    logger.configure(enable_json_logs=config.enable_json_logs)

    app = FastAPI(title="Expense Tracker Login API")

    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # One registry per process, shared by every connection
    app.state.accounts = LocalAccounts()

    # Routes
    register_routes(app)

    return app
