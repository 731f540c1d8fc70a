from __future__ import annotations
import logging
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from typing import Optional

from rich.logging import RichHandler

GAME_ID_VAR: ContextVar[str] = ContextVar('game_id', default='-')


class _GameIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.game_id = GAME_ID_VAR.get()
        return True


def configure_logging(level: str = 'INFO', log_path: Optional[str] = None) -> logging.Logger:
    root = logging.getLogger()
    if root.handlers:
        return logging.getLogger('shabetz')

    root.setLevel(level.upper())
    game_filter = _GameIdFilter()

    console = RichHandler(rich_tracebacks=True)
    console.addFilter(game_filter)
    console.setFormatter(logging.Formatter('[%(game_id)s] %(message)s'))
    root.addHandler(console)

    if log_path:
        try:
            fh = RotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=5, encoding='utf-8')
        except OSError as e:
            logging.getLogger('shabetz').warning('Cannot open log file %s: %s', log_path, e)
        else:
            fh.setLevel(logging.DEBUG)
            fh.addFilter(game_filter)
            fh.setFormatter(logging.Formatter(
                '%(asctime)s %(levelname)s %(name)s [game=%(game_id)s] %(message)s'
            ))
            root.addHandler(fh)

    return logging.getLogger('shabetz')
