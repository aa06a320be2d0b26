"""Append-only audit trail of submissions.

Each submission becomes one JSON object on its own line in logs/app.log:

    {"timestamp":"2025-01-02T10:00:00+01:00","a":"1","b":"2","tab_name":"demo"}

`timestamp` always comes first and `tab_name` last; the submitted pairs sit in
between in whatever order the mapping yields them. Lines are never read back.
"""
from __future__ import annotations
import datetime, json, logging, pathlib
from typing import Dict, Optional

import settings
from app_logging import get_logger

log = get_logger('audit_log')

RESERVED_FIELDS = ('timestamp', 'tab_name')


def rfc3339_now() -> str:
    return datetime.datetime.now().astimezone().isoformat(timespec='seconds')


def build_entry(tab_name: str, key_values: Dict[str, str], timestamp: Optional[str] = None) -> Dict[str, str]:
    entry = {'timestamp': timestamp or rfc3339_now()}
    for key, value in key_values.items():
        if key in RESERVED_FIELDS:
            log.warning('Dropping submitted field %r: reserved audit field', key)
            continue
        entry[key] = value
    entry['tab_name'] = tab_name
    return entry


def encode_entry(entry: Dict[str, str]) -> str:
    return json.dumps(entry, ensure_ascii=False, separators=(',', ':'))


class AuditLog:
    """Owns the audit file handle for the lifetime of the app."""

    def __init__(self, logger: logging.Logger, handler: logging.Handler):
        self._logger = logger
        self._handler = handler

    @classmethod
    def open(cls, path: Optional[pathlib.Path] = None) -> 'AuditLog':
        path = pathlib.Path(path or settings.AUDIT_LOG_PATH)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode='a', encoding='utf-8', errors='replace')
        handler.setFormatter(logging.Formatter('%(message)s'))
        logger = logging.getLogger(f'keyjournal.audit.{path.resolve()}')
        logger.setLevel(logging.INFO)
        logger.propagate = False
        logger.addHandler(handler)
        log.info('Audit log opened at %s', path)
        return cls(logger, handler)

    @property
    def path(self) -> pathlib.Path:
        return pathlib.Path(self._handler.baseFilename)

    def record(self, tab_name: str, key_values: Dict[str, str]) -> str:
        line = encode_entry(build_entry(tab_name, key_values))
        self._logger.info(line)
        return line

    def close(self) -> None:
        self._logger.removeHandler(self._handler)
        self._handler.close()
