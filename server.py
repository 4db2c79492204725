#!/usr/bin/env python3
"""
Margin timeline service
Serves the margin management HTTP API on top of the rates database
"""

from fxrates.core.state import State
from fxrates.core.application_context import ApplicationContext
from fxrates.core.constants import *
from fxrates.margins.margin_database_manager import MarginDatabaseManager
from fxrates.margins.services.margin_service import MarginService
from fxrates.api.margins_api import MarginsApi
from fxrates import logger
from dotenv import load_dotenv
import argparse
import os
import sys


def build_application_context(config):
    state_manager = State(config)
    application_context = ApplicationContext(state_manager)

    # Initialize database_manager FIRST so services can access it
    database_manager = MarginDatabaseManager(application_context)
    application_context.database_manager = database_manager

    margin_service = MarginService(application_context)
    application_context.margin_service = margin_service

    return application_context


def main():
    # Load environment variables from .env file
    load_dotenv()

    parser = argparse.ArgumentParser(description="Margin timeline service")
    parser.add_argument("--database-url", default=os.environ.get("FXRATES_DATABASE_URL"),
                        help="SQLAlchemy database URL (env FXRATES_DATABASE_URL)")
    parser.add_argument("--timezone", default=os.environ.get("FXRATES_TIMEZONE", DEFAULT_TIMEZONE),
                        help="Timezone used to decide what 'today' is")
    parser.add_argument("--max-margin-pct", type=float,
                        default=float(os.environ.get("FXRATES_MAX_MARGIN_PCT", DEFAULT_MAX_MARGIN_PCT)),
                        help="Largest accepted margin in percent")
    parser.add_argument("--host", default=os.environ.get("FXRATES_HOST", DEFAULT_API_HOST), help="API host")
    parser.add_argument("--port", type=int, default=int(os.environ.get("FXRATES_PORT", DEFAULT_API_PORT)),
                        help="API port")
    parser.add_argument("--cors-origin", action="append",
                        default=None, help="Allowed CORS origin, repeatable (env FRONTEND_ORIGIN)")
    parser.add_argument("--auth-header", default=os.environ.get("FXRATES_AUTH_HEADER", DEFAULT_AUTH_HEADER),
                        help="Header carrying the authenticated user id")
    parser.add_argument("--relink", action="store_true",
                        help="Recompute every rate's margin link and exit")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")

    args = parser.parse_args()

    if not args.database_url:
        parser.error("--database-url or FXRATES_DATABASE_URL is REQUIRED")

    cors_origins = args.cors_origin or [os.environ.get("FRONTEND_ORIGIN", "http://localhost:5173")]

    config = {
        CONFIG_DATABASE_URL: args.database_url,
        CONFIG_TIMEZONE: args.timezone,
        CONFIG_MAX_MARGIN_PCT: args.max_margin_pct,
        CONFIG_API_HOST: args.host,
        CONFIG_API_PORT: args.port,
        CONFIG_API_PREFIX: DEFAULT_API_PREFIX,
        CONFIG_CORS_ORIGINS: cors_origins,
        CONFIG_AUTH_HEADER: args.auth_header,
    }

    if args.debug:
        logger.setLevel("DEBUG")

    application_context = build_application_context(config)

    if args.relink:
        changed = application_context.margin_service.relink_all()
        logger.info(f"relink finished, {changed} rates changed")
        return

    api = MarginsApi(application_context)
    try:
        api.run()
    except KeyboardInterrupt:
        logger.info("Margin service stopped by user")
    except Exception as e:
        logger.error(f"Margin service error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
