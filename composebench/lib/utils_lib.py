'''
Copyright 2025 Advanced Micro Devices, Inc.
All rights reserved. This notice is intended as a precaution against inadvertent publication and does not imply publication or any waiver of confidentiality.
The year included in the foregoing notice is the year of creation of the work.
All code contained here is Property of Advanced Micro Devices, Inc.
'''

import logging
import os
import re
import sys

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value):
    """
    Convert a duration into seconds.

    Args:
      value (str | int | float): A duration string in the format used by the
        benchmark configuration ('500ms', '30s', '1m30s', '1h'), or a number
        which is taken as seconds.

    Returns:
      float: Total seconds.

    Raises:
      ValueError: if the value is negative, empty or not a valid duration.

    Behavior:
      - A bare '0' is accepted and returns 0.0.
      - Components may be repeated and combined in any order ('1m30s', '1h5m').
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"invalid duration {value!r}: must not be negative")
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"invalid duration {value!r}")

    text = value.strip()
    if text in ("0", "0s"):
        return 0.0
    if not text or text.startswith("-"):
        raise ValueError(f"invalid duration {value!r}")

    total = 0.0
    pos = 0
    for match in _DURATION_PART_RE.finditer(text):
        if match.start() != pos:
            raise ValueError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return total


def format_duration(seconds):
    """Format seconds truncated to whole seconds, e.g. 95.7 -> '1m35s'."""
    secs = max(int(seconds), 0)
    hours, rem = divmod(secs, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


class StepLogger(logging.LoggerAdapter):
    """Logger adapter that prefixes every message with the run context."""

    def process(self, msg, kwargs):
        fields = " ".join(f"{k}={v}" for k, v in self.extra.items())
        return f"[{fields}] {msg}", kwargs


def get_step_logger(logger, **fields):
    return StepLogger(logger, fields)


def setup_logging(level="INFO", log_file=None):
    """
    Configure the root logger with a console handler and an optional file handler.

    Args:
      level (str): Name of the log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
      log_file (str | None): If given, log records are also written to this file.
        Its parent directory is created when missing.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # urllib3 logs every connection to the metrics endpoints at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
