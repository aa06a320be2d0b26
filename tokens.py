"""Shared-token store.

Tokens come from the file named by KEYJOURNAL_TOKENS_FILE when it is set and
readable, otherwise from the raw value of KEYJOURNAL_TOKENS. Separators:
comma, newline, carriage return, tab, space.

An empty store means authentication is off: the gate lets everything
through and /api/login answers 204.

The set is built once at startup and never mutated afterwards, so it is
shared across request threads without locking.
"""
from __future__ import annotations
import os, pathlib, re
from typing import FrozenSet, Iterable, Mapping, Optional

import settings
from app_logging import get_logger

log = get_logger('tokens')

_SEPARATORS = re.compile(r'[,\n\r\t ]+')


def load_tokens(environ: Optional[Mapping[str, str]] = None) -> str:
    """Return the raw token source (not yet split)."""
    env = os.environ if environ is None else environ
    path = env.get(settings.TOKENS_FILE_ENV, '').strip()
    if path:
        try:
            return pathlib.Path(path).read_text(encoding='utf-8').strip()
        except OSError as e:
            log.warning('Token file %s unreadable (%s); falling back to %s', path, e, settings.TOKENS_ENV)
    return env.get(settings.TOKENS_ENV, '')


def parse_tokens(raw: str) -> FrozenSet[str]:
    tokens = set()
    for piece in _SEPARATORS.split(raw or ''):
        piece = piece.strip()
        if piece:
            tokens.add(piece)
    return frozenset(tokens)


class TokenStore:
    def __init__(self, tokens: Iterable[str] = ()):
        self._tokens = frozenset(tokens)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'TokenStore':
        return cls(parse_tokens(load_tokens(environ)))

    @property
    def enabled(self) -> bool:
        """True when at least one token is configured (auth required)."""
        return bool(self._tokens)

    def allowed(self, token: Optional[str]) -> bool:
        if not token:
            return False
        return token in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)
