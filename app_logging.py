"""Central logging setup for the service.

Usage:
    from app_logging import get_logger
    log = get_logger(__name__)
    log.info("message")

Operational log: logs/keyjournal.log plus stdout (rotates at ~5MB, keeps 5
backups). The audit trail in logs/app.log is written separately by audit_log.AuditLog.
"""
from __future__ import annotations
import logging, logging.handlers, os

import settings

_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'
_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

_root = logging.getLogger('keyjournal')


def configure(log_file=None) -> logging.Logger:
    """Attach stdout + file handlers once. Safe to call repeatedly."""
    if _root.handlers:
        return _root
    _root.setLevel(_LEVEL)
    stream = logging.StreamHandler()
    stream.setFormatter(logging.Formatter(_FORMAT))
    _root.addHandler(stream)
    path = log_file or settings.SERVICE_LOG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=5_000_000, backupCount=5, encoding='utf-8')
    handler.setFormatter(logging.Formatter(_FORMAT))
    _root.addHandler(handler)
    return _root


def get_logger(name = None) -> logging.Logger:  # name: Optional[str]
    if name and name.startswith('keyjournal.'):
        return logging.getLogger(name)
    if name:
        return logging.getLogger(f'keyjournal.{name}')
    return _root
