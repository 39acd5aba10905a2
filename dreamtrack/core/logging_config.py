"""
Process-wide logging setup. Stdout only; gunicorn / the platform captures it.
"""
import logging
import sys

from dreamtrack.core.config import settings

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=_FORMAT,
        stream=sys.stdout,
        force=True,
    )
