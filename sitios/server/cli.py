"""Command-line entrypoint for the sitios service.

Parses arguments, configures logging, loads ``ServiceConfig`` and runs the
aiohttp application.

Log level can be overridden by the ``LOG_LEVEL`` environment variable, and
file logging is skipped when ``DISABLE_FILE_LOGS`` is set.

Examples
--------
CLI usage:

>>> # In shell
>>> python -m sitios.server.cli --port 8080 --log-level DEBUG
"""

from __future__ import annotations

import argparse
import logging
import os

from aiohttp import web

from sitios.config import LOG_DIR, LOG_FILENAME_SERVER, LOG_FORMAT

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO", enable_file: bool = True) -> None:
    r"""Configure root logging for the service.

    Installs a console handler and, optionally, a file handler writing to
    ``LOG_DIR / LOG_FILENAME_SERVER`` with ``LOG_FORMAT``. Existing root
    handlers are removed. A file handler that cannot be created is skipped.

    Parameters
    ----------
    level : str, optional
        Logging level name. Defaults to "INFO".
    enable_file : bool, optional
        Whether to add the file handler. Defaults to True.

    Examples
    --------
    >>> configure_logging("DEBUG", enable_file=False)
    """
    for h in logging.root.handlers[:]:
        logging.root.removeHandler(h)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if enable_file:
        try:
            LOG_DIR.mkdir(exist_ok=True)
            handlers.insert(
                0, logging.FileHandler(LOG_DIR / LOG_FILENAME_SERVER, mode="a")
            )
        except OSError:
            logging.getLogger(__name__).warning(
                "Cannot open log file in %s, logging to console only", LOG_DIR
            )
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments.

    Returns
    -------
    argparse.Namespace
        Parsed arguments with attributes ``host``, ``port`` and ``log_level``.
    """
    parser = argparse.ArgumentParser(description="Run the sitios publishing service.")
    parser.add_argument("--host", type=str, default=os.environ.get("HOST", "0.0.0.0"))
    parser.add_argument("-p", "--port", type=int, default=None)
    parser.add_argument(
        "--log-level", type=str, default=os.environ.get("LOG_LEVEL", "INFO")
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the service; return a process exit code."""
    args = parse_arguments(argv)
    configure_logging(args.log_level, enable_file=not os.environ.get("DISABLE_FILE_LOGS"))

    from .app import build_app
    from .config import ServiceConfig

    try:
        config = ServiceConfig()
    except ValueError:
        logger.exception("Configuration error while initializing ServiceConfig")
        return 2

    port = args.port if args.port is not None else config.port
    logger.info("Listening on port %d", port)
    web.run_app(build_app(config), host=args.host, port=port, print=None)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
