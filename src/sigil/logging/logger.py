# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from __future__ import annotations

import sys
from typing import Protocol, TextIO, runtime_checkable


@runtime_checkable
class LoggerProtocol(Protocol):
    def log(self, message: str) -> None: ...


class StdOutLogger:
    def __init__(self, stream: TextIO | None = None):
        self.stream = stream

    def log(self, message: str) -> None:
        print(message, file=self.stream or sys.stdout, flush=True)


class Tee:
    """Duplicates each message to several loggers."""

    def __init__(self, *loggers: LoggerProtocol):
        self.loggers = list(loggers)

    def log(self, message: str) -> None:
        for logger in self.loggers:
            logger.log(message)
