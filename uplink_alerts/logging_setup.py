from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from uplink_alerts.notification.message_format import DEFAULT_TIMEZONE


class ZonedFormatter(logging.Formatter):
    """Log formatter that stamps records in a fixed time zone."""

    def __init__(self, fmt: str, tz_name: str = DEFAULT_TIMEZONE):
        super().__init__(fmt)
        self._tz = ZoneInfo(tz_name)

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        ts = datetime.fromtimestamp(record.created, tz=self._tz)
        return ts.strftime(datefmt or "%Y-%m-%d %H:%M:%S")


def configure_logging(level: int = logging.INFO, tz_name: str = DEFAULT_TIMEZONE) -> None:
    """Install one stream handler on the root logger, replacing earlier ones."""
    handler = logging.StreamHandler()
    handler.setFormatter(ZonedFormatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s", tz_name))

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(level)
