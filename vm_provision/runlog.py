"""
Run log: the append-only record of checkpoints and errors for one run.

Every entry goes to three file sinks (combined, checkpoint-only and
error-only) and is echoed to stdout (checkpoints) or stderr (errors). The
sinks are plain ``logging`` handlers so each record is written and flushed
as soon as it is emitted.
"""

import datetime
import itertools
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union

from rich.console import Console
from rich.logging import RichHandler

from .theme import console, err_console

CHECKPOINT = 25
logging.addLevelName(CHECKPOINT, "CHECKPOINT")

LOG_FORMAT = "[%(levelname)s] %(asctime)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_log_ids = itertools.count()
logger = logging.getLogger("vm_provision.runlog")


class LogKind(Enum):
    CHECKPOINT = CHECKPOINT
    ERROR = logging.ERROR


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime.datetime
    kind: LogKind
    message: str

    def render(self) -> str:
        return f"[{self.kind.name}] {self.timestamp.strftime(DATE_FORMAT)} {self.message}"


class KindFilter(logging.Filter):
    """Let through only records of the given kinds."""

    def __init__(self, *kinds: LogKind) -> None:
        super().__init__()
        self.levels = {kind.value for kind in kinds}

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno in self.levels


class EntryRecorder(logging.Handler):
    """In-memory sink keeping every entry in emission order."""

    def __init__(self) -> None:
        super().__init__()
        self.entries: List[LogEntry] = []
        self.addFilter(KindFilter(LogKind.CHECKPOINT, LogKind.ERROR))

    def emit(self, record: logging.LogRecord) -> None:
        self.entries.append(
            LogEntry(
                timestamp=datetime.datetime.fromtimestamp(record.created),
                kind=LogKind(record.levelno),
                message=record.getMessage(),
            )
        )


class RunLog:
    def __init__(self, name: Optional[str] = None) -> None:
        self.logger = logging.getLogger(name or f"vm_provision.run.{next(_log_ids)}")
        self.logger.setLevel(CHECKPOINT)
        self.logger.propagate = False
        for h in self.logger.handlers[:]:
            h.close()
            self.logger.removeHandler(h)
        self._recorder = EntryRecorder()
        self.logger.addHandler(self._recorder)

    @classmethod
    def to_files(
        cls,
        combined: Union[str, Path],
        checkpoints: Union[str, Path],
        errors: Union[str, Path],
        echo: bool = True,
    ) -> "RunLog":
        run_log = cls()
        run_log.add_file_sink(combined)
        run_log.add_file_sink(checkpoints, LogKind.CHECKPOINT)
        run_log.add_file_sink(errors, LogKind.ERROR)
        if echo:
            run_log.add_console_sinks()
        return run_log

    def add_file_sink(
        self,
        path: Union[str, Path],
        kind: Optional[LogKind] = None,
        mode: int = 0o600,
    ) -> logging.FileHandler:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        try:
            os.chmod(str(path), mode)
        except OSError as e:
            logger.warning(f"Could not set permissions on log file {path}: {e}")
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        if kind is not None:
            handler.addFilter(KindFilter(kind))
        self.logger.addHandler(handler)
        return handler

    def add_console_sinks(
        self, out: Console = console, err: Console = err_console
    ) -> None:
        for target, kind in ((out, LogKind.CHECKPOINT), (err, LogKind.ERROR)):
            handler = RichHandler(console=target, show_path=False, markup=False)
            handler.addFilter(KindFilter(kind))
            self.logger.addHandler(handler)

    def checkpoint(self, message: str) -> None:
        self.logger.log(CHECKPOINT, message)

    def error(self, message: str) -> None:
        self.logger.error(message)

    @property
    def entries(self) -> Tuple[LogEntry, ...]:
        return tuple(self._recorder.entries)

    def checkpoints(self) -> List[str]:
        return [e.message for e in self.entries if e.kind is LogKind.CHECKPOINT]

    def errors(self) -> List[str]:
        return [e.message for e in self.entries if e.kind is LogKind.ERROR]

    def close(self) -> None:
        for h in self.logger.handlers[:]:
            if h is self._recorder:
                continue
            h.flush()
            h.close()
            self.logger.removeHandler(h)


# ----------------------------------------------------------------
# Diagnostic Logger Setup
# ----------------------------------------------------------------
def setup_logger(verbose: bool = False) -> logging.Logger:
    """
    Configure the ``vm_provision`` logger used for command-level diagnostics.
    The run log above is separate and does not propagate here.
    """
    logger = logging.getLogger("vm_provision")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    for h in logger.handlers[:]:
        logger.removeHandler(h)
    console_handler = RichHandler(console=console, rich_tracebacks=True, show_path=False)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.addHandler(console_handler)
    return logger
