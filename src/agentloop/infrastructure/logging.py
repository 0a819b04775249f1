"""Logging setup for command line use."""

import logging

import structlog


def configure_logging(debug: bool = False) -> None:
    """
    Configure stdlib logging and structlog filtering.

    Debug mode logs everything from DEBUG up with a console renderer;
    otherwise only warnings and errors are shown.
    """
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=debug),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )
