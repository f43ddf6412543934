"""Lightweight logging for termqtt.

Writes to stderr so log lines never mix with payloads printed on stdout.
"""

import sys

DEBUG = 0
INFO = 1
WARNING = 2
ERROR = 3

_LEVEL_NAMES = {0: 'DEBUG', 1: 'INFO', 2: 'WARN', 3: 'ERROR'}
_NAME_LEVELS = {'DEBUG': 0, 'INFO': 1, 'WARNING': 2, 'ERROR': 3}


def _coerce_level(level):
    if isinstance(level, str):
        return _NAME_LEVELS.get(level.upper(), INFO)
    return level


class Logger:
    __slots__ = ('name', 'level', 'stream')

    def __init__(self, name, level=INFO, stream=None):
        self.name = name
        self.level = _coerce_level(level)
        self.stream = stream

    def _log(self, level, msg, *args):
        if level >= self.level:
            if args:
                msg = msg % args
            # Resolved per call so pytest's capsys sees the swapped stream
            out = self.stream if self.stream is not None else sys.stderr
            print("[%s] %s: %s" % (_LEVEL_NAMES.get(level, '?'), self.name, msg), file=out)

    def debug(self, msg, *args):
        self._log(DEBUG, msg, *args)

    def info(self, msg, *args):
        self._log(INFO, msg, *args)

    def warning(self, msg, *args):
        self._log(WARNING, msg, *args)

    def error(self, msg, *args):
        self._log(ERROR, msg, *args)


_loggers = {}


def get_logger(name, level=None):
    """Return the shared logger for ``name``.

    ``level`` only applies when the logger is first created, unless given
    explicitly again, in which case the existing logger is updated.
    """
    if name not in _loggers:
        _loggers[name] = Logger(name, INFO if level is None else level)
    elif level is not None:
        _loggers[name].level = _coerce_level(level)
    return _loggers[name]


def set_level(level):
    """Apply ``level`` to every logger created so far."""
    level = _coerce_level(level)
    for logger in _loggers.values():
        logger.level = level
