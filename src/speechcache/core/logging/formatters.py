"""
Log Formatters for JSON and Console Output.

    JsonlFormatter: one JSON object per line for the log file
    ColoredConsoleFormatter: human-readable, ANSI-coloured terminal output

Output Examples:
    JSONL:
        {"ts":"2026-10-18T14:30:05+02:00","level":2,"tag":"WARN","message":"inconsistency","job_id":"flush-3f2a","extra":{"utterance_id":1234}}

    Console:
        14:30:05 [ WARN  ] (flush-3f2a) inconsistency utterance_id=1234
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Dict


class Colors:
    """ANSI escape codes used by the console formatter."""
    RESET = "\033[0m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    GRAY = "\033[90m"
    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_CYAN = "\033[96m"


_TAG_COLORS = {
    "SUCCESS": Colors.BRIGHT_GREEN,
    "FAIL": Colors.BRIGHT_RED,
    "ERROR": Colors.BRIGHT_RED,
    "WARN": Colors.BRIGHT_YELLOW,
    "INFO": Colors.BRIGHT_CYAN,
    "DEBUG": Colors.GRAY,
    "TRACE": Colors.GRAY,
}


def supports_color() -> bool:
    """
    Check whether stdout should receive ANSI colours.

    Disabled by NO_COLOR (https://no-color.org/), SPEECHCACHE_NO_COLOR=1,
    or a non-TTY stdout.
    """
    if os.getenv("NO_COLOR") is not None:
        return False
    if os.getenv("SPEECHCACHE_NO_COLOR", "0") == "1":
        return False
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


class JsonlFormatter(logging.Formatter):
    """Format log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).astimezone().isoformat()

        payload: Dict[str, Any] = {
            "ts": ts,
            "level": getattr(record, "numeric_level", 2),
            "tag": getattr(record, "tag", record.levelname),
            "message": record.getMessage(),
            "job_id": getattr(record, "job_id", "-"),
        }

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            payload["seconds"] = seconds

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """
    Format log records for the terminal.

    Output Format:
        HH:MM:SS [ TAG   ] (job) message key=value 0.123s
    """

    def __init__(self, use_colors: bool = False):
        super().__init__()
        self.use_colors = use_colors

    def _c(self, text: str, color: str) -> str:
        if not self.use_colors:
            return text
        return f"{color}{text}{Colors.RESET}"

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        jid = getattr(record, "job_id", "-")

        parts = [
            self._c(ts, Colors.DIM),
            self._c(f"[{tag:^7}]", _TAG_COLORS.get(tag, Colors.RESET)),
        ]
        if jid != "-":
            parts.append(self._c(f"({jid})", Colors.DIM + Colors.CYAN))
        parts.append(record.getMessage())

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            if seconds < 0.1:
                time_color = Colors.GREEN
            elif seconds < 1.0:
                time_color = Colors.YELLOW
            else:
                time_color = Colors.RED
            parts.append(self._c(f"{seconds:.3f}s", time_color))

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for k, v in extra_data.items():
                # Counts of failed rows stand out
                color = Colors.RED if k in ("failed", "inconsistent") and v else Colors.DIM
                parts.append(self._c(f"{k}={v}", color))

        return " ".join(parts)
