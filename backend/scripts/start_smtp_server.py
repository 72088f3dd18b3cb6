#!/usr/bin/env python3
"""SMTP Server Startup Script for groupmail.

Starts an aiosmtpd server with GroupmailSMTPHandler. Every message sent to
<group>@MAIL_DOMAIN runs through the inbound pipeline; notifications are
queued on Celery.

Usage:
    python scripts/start_smtp_server.py

Environment Variables:
    SMTP_HOST: Bind address (default: 0.0.0.0)
    SMTP_PORT: Listen port (default: 2525)
    SMTP_MAX_SIZE: Max email size in bytes (default: 10485760 = 10MB)
    MAIL_DOMAIN: Domain the group addresses live under
    DATABASE_URL: PostgreSQL connection string
    CELERY_BROKER_URL: Broker for outbound notifications
    REDIS_URL: Optional avatar cache
"""

import asyncio
import logging
import sys

from aiosmtpd.controller import Controller

from groupmail.config import get_settings
from groupmail.database import SessionLocal, init_db
from groupmail.dependencies import get_avatar_lookup, get_email_sender
from groupmail.infrastructure.ingest import GroupmailSMTPHandler
from groupmail.observability.logging_config import configure_logging

logger = logging.getLogger(__name__)


async def main():
    """Start SMTP server with the groupmail handler."""
    settings = get_settings()
    configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    logger.info("=== groupmail SMTP Server Starting ===")
    logger.info(f"SMTP Bind: {settings.SMTP_HOST}:{settings.SMTP_PORT}")
    logger.info(f"Mail Domain: {settings.group_email_domain}")
    logger.info(f"Max Message Size: {settings.SMTP_MAX_SIZE} bytes")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[-1]}")  # Hide credentials

    init_db()

    smtp_handler = GroupmailSMTPHandler(
        session_factory=SessionLocal,
        sender=get_email_sender(),
        domain=settings.group_email_domain,
        avatars=get_avatar_lookup(settings),
    )

    controller = Controller(
        smtp_handler,
        hostname=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        server_hostname=settings.group_email_domain,
        # Enable SMTPUTF8 for international email addresses
        enable_SMTPUTF8=True,
        data_size_limit=settings.SMTP_MAX_SIZE,
    )

    controller.start()

    logger.info(f"SMTP server started on {settings.SMTP_HOST}:{settings.SMTP_PORT}")
    logger.info(f"Accepting emails to: <group>@{settings.group_email_domain}")
    logger.info("Press Ctrl+C to stop")

    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        logger.info("Shutting down SMTP server...")
        controller.stop()
        logger.info("SMTP server stopped")


if __name__ == '__main__':
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, exiting")
        sys.exit(0)
    except Exception as e:
        logger.error(f"SMTP server failed: {e}", exc_info=True)
        sys.exit(1)
