from __future__ import annotations

import logging

from imagegallery.core.redact import redact_any


class RedactFilter(logging.Filter):
    """Scrubs storage account keys and SAS signatures from every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
            record.msg = redact_any(message)
            record.args = ()
            for key, value in list(record.__dict__.items()):
                if key.startswith("_") or key in {"msg", "args", "exc_info", "exc_text", "stack_info"}:
                    continue
                record.__dict__[key] = redact_any(value)
        except Exception:
            pass
        return True


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format="%(levelname)s %(name)s %(message)s")
    # Logger-level filters do not see records propagated from child loggers.
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RedactFilter) for f in handler.filters):
            handler.addFilter(RedactFilter())
    # The storage SDK logs every request and response header block at INFO.
    logging.getLogger("azure.core.pipeline.policies.http_logging_policy").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
