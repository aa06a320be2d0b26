"""Token gate for the API routes.

`auth_middleware` runs before routing, so an unauthenticated request gets 401
even when the method or path would not match. Everything under `/api/` except
`/api/login` is gated; `/` is open.

A request passes when the token store is empty, or when one of these carries
an allowed token, checked in order (first hit wins):
  1. cookie `kj_token`
  2. header `X-Auth-Token`
  3. header `Authorization: Bearer <token>`
  4. query parameter `token`
"""
from __future__ import annotations

from fastapi import Request, Response
from fastapi.responses import JSONResponse

import settings
from app_logging import get_logger
from tokens import TokenStore

log = get_logger('auth')

_BEARER = 'Bearer '
EXEMPT_PATHS = ('/api/login',)


def _candidates(request: Request):
    yield 'cookie', request.cookies.get(settings.COOKIE_NAME)
    yield 'header', request.headers.get('X-Auth-Token')
    authorization = request.headers.get('Authorization', '')
    if authorization.startswith(_BEARER):
        yield 'bearer', authorization[len(_BEARER):]
    yield 'query', request.query_params.get('token')


def is_authorized(request: Request, tokens: TokenStore) -> bool:
    if not tokens.enabled:
        return True
    for source, token in _candidates(request):
        if tokens.allowed(token):
            log.debug('Authorized %s %s via %s', request.method, request.url.path, source)
            return True
    return False


def is_gated(path: str) -> bool:
    return path.startswith('/api/') and path not in EXEMPT_PATHS


async def auth_middleware(request: Request, call_next):
    if is_gated(request.url.path) and not is_authorized(request, request.app.state.tokens):
        log.debug('Rejected %s %s: no allowed token', request.method, request.url.path)
        return JSONResponse(status_code=401, content={'detail': 'unauthorized'})
    return await call_next(request)


def set_token_cookie(response: Response, token: str, secure: bool = False) -> None:
    response.set_cookie(
        settings.COOKIE_NAME,
        token,
        path='/',
        httponly=True,
        samesite='lax',
        secure=secure,
    )
