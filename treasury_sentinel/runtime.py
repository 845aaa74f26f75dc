"""
Treasury Sentinel — host process wiring.

Configures structured logging and builds a ready-to-use WalletEngine from
settings. Hosts embedding the engine call ``bootstrap()`` once at start-up.
"""

from __future__ import annotations

import logging

import structlog

from treasury_sentinel.config import SentinelSettings, settings
from treasury_sentinel.engine import WalletEngine
from treasury_sentinel.wallet.clock import Clock


def configure_logging(config: SentinelSettings | None = None) -> None:
    """Configure structured logging."""
    config = config or settings
    level = logging.getLevelName(config.log_level.upper())
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if config.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bootstrap(clock: Clock | None = None, config: SentinelSettings | None = None) -> WalletEngine:
    """Configure logging, open storage and verify the notification chain."""
    config = config or settings
    configure_logging(config)
    log = structlog.get_logger()

    log.info("treasury_sentinel.runtime.starting", database_url=config.database_url)
    engine = WalletEngine.from_url(config.database_url, clock=clock, echo=config.database_echo)

    is_valid, entries, message = engine.verify_audit_trail()
    if not is_valid:
        log.critical(
            "treasury_sentinel.runtime.integrity_failure",
            message=message,
            entries=entries,
        )
    else:
        log.info("treasury_sentinel.runtime.ready", ledger_entries=entries)
    return engine
