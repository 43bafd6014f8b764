"""
Logging configuration module.

- Standard library only
- Dual output: console (readable text) + file (CSV for analysis)
- Daily rotation, keep 30 days history

Structured fields are passed through `extra`:
    logger.info("Sync finished", extra={"organization_id": org_id, "trigger": "manual"})
"""

import csv
import io
import logging
import os
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

LOG_DIR = Path(os.environ.get("LOG_DIR", Path(__file__).parent.parent.parent / "logs"))

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

CSV_FIELDS = ["timestamp", "level", "module", "message", "organization_id", "trigger", "error"]


class CsvFormatter(logging.Formatter):
    """CSV formatter; quotes and commas are handled by the csv module."""

    def format(self, record):
        output = io.StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL)

        writer.writerow([
            self.formatTime(record, self.datefmt),
            record.levelname,
            record.name,
            record.getMessage(),
            getattr(record, "organization_id", ""),
            getattr(record, "trigger", ""),
            getattr(record, "error", ""),
        ])
        return output.getvalue().strip()


class CsvRotatingFileHandler(TimedRotatingFileHandler):
    """Timed rotating file handler that writes the CSV header into new files."""

    def _open(self):
        is_new = not os.path.exists(self.baseFilename) or \
            os.path.getsize(self.baseFilename) == 0

        stream = super()._open()

        if is_new:
            stream.write(",".join(CSV_FIELDS) + "\n")
            stream.flush()

        return stream


def setup_logging(level: int = logging.INFO) -> None:
    """
    Configure logging for both the API process and Celery workers.

    Idempotent: repeated calls won't create duplicate handlers.
    """
    LOG_DIR.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()

    if any(isinstance(h, CsvRotatingFileHandler) for h in root_logger.handlers):
        return

    root_logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))
    root_logger.addHandler(console_handler)

    today = datetime.now().strftime("%Y_%m_%d")
    csv_handler = CsvRotatingFileHandler(
        filename=LOG_DIR / f"release_sync_{today}.csv",
        when="midnight",
        interval=1,
        backupCount=30,
        encoding="utf-8",
    )
    csv_handler.setFormatter(CsvFormatter(datefmt=DATE_FORMAT))
    root_logger.addHandler(csv_handler)

    # httpx logs full request URLs at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
