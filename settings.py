"""Fixed paths and environment names for the KeyJournal service.

Everything lives under relative directories next to the working dir:
  data/app.db      sqlite store (tabs + key_values)
  logs/app.log     audit log, one JSON object per submission
  static/          front end served at /

Env:
  KEYJOURNAL_TOKENS_FILE  path to a token file (takes precedence when readable)
  KEYJOURNAL_TOKENS       inline tokens (comma / whitespace separated)
  LOG_LEVEL               operational log level (default INFO)
"""
from __future__ import annotations
import pathlib

DATA_DIR = pathlib.Path('data')
DB_PATH = DATA_DIR / 'app.db'

LOG_DIR = pathlib.Path('logs')
AUDIT_LOG_PATH = LOG_DIR / 'app.log'
SERVICE_LOG_PATH = LOG_DIR / 'keyjournal.log'

STATIC_DIR = pathlib.Path(__file__).parent / 'static'

HOST = '0.0.0.0'
PORT = 8907

TOKENS_FILE_ENV = 'KEYJOURNAL_TOKENS_FILE'
TOKENS_ENV = 'KEYJOURNAL_TOKENS'

COOKIE_NAME = 'kj_token'


def ensure_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
