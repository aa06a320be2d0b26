"""FastAPI KeyJournal service.
Run with: python journal_api.py   (listens on :8907)

Endpoints:
GET  /                  -> static/index.html
POST /api/login         {token} -> sets kj_token cookie (204 when auth is off)
GET  /api/tabs          -> [{id, name}]
POST /api/tabs          {name} -> {id, name}
POST /api/tabs/delete   {id}
POST /api/tabs/rename   {id, name}
GET  /api/keyvalues?tab_id=N -> [{id, tab_id, key, value}]
POST /api/keyvalues     {tab_id, key_values} -> replaces the tab's pairs
POST /api/submit        {tab_name, key_values} -> one JSON line in logs/app.log

Everything under /api/ except /api/login sits behind auth.auth_middleware.
"""
from __future__ import annotations
import pathlib, sqlite3
from typing import Annotated, Dict, List, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from pydantic import AfterValidator, BaseModel, Field, StrictInt, StrictStr, ValidationError

import db, settings
from app_logging import configure, get_logger
from audit_log import AuditLog
from auth import auth_middleware, set_token_cookie
from tokens import TokenStore

log = get_logger('journal_api')


def replace_surrogates(value: str) -> str:
    """Lone surrogates (from "\\ud800"-style JSON escapes) become U+FFFD."""
    return value.encode('utf-16', 'surrogatepass').decode('utf-16', 'replace')


# Bodies decode strictly: no "5" for 5, no true for 1, ids within sqlite's int64.
Text = Annotated[StrictStr, AfterValidator(replace_surrogates)]
RowId = Annotated[StrictInt, Field(ge=-2**63, le=2**63 - 1)]


class LoginRequest(BaseModel):
    token: Text = ''

class CreateTabRequest(BaseModel):
    name: Text = ''

class DeleteTabRequest(BaseModel):
    id: RowId = 0

class RenameTabRequest(BaseModel):
    id: RowId = 0
    name: Text = ''

class ReplaceKeyValuesRequest(BaseModel):
    tab_id: RowId = 0
    key_values: Optional[Dict[Text, Text]] = None

class SubmitRequest(BaseModel):
    tab_name: Text = ''
    key_values: Optional[Dict[Text, Text]] = None


def describe_errors(errors) -> str:
    parts = []
    for err in errors:
        loc = '.'.join(str(p) for p in err.get('loc', ()) if p != 'body')
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get('msg')))
    return '; '.join(parts) or 'invalid request'


def get_conn(request: Request) -> sqlite3.Connection:
    return request.app.state.conn

def get_audit(request: Request) -> AuditLog:
    return request.app.state.audit


home = APIRouter()
api = APIRouter(prefix='/api')


@home.get('/')
async def serve_home(request: Request):
    index = pathlib.Path(request.app.state.static_dir) / 'index.html'
    if not index.is_file():
        raise HTTPException(status_code=404, detail='not_found')
    return FileResponse(index, media_type='text/html')


@api.api_route('/login', methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE'])
async def login(request: Request):
    tokens: TokenStore = request.app.state.tokens
    if not tokens.enabled:
        return Response(status_code=204)
    if request.method != 'POST':
        raise HTTPException(status_code=405, detail='method_not_allowed')
    try:
        body = LoginRequest.model_validate_json(await request.body())
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=describe_errors(e.errors()))
    if not tokens.allowed(body.token):
        log.info('Login rejected')
        raise HTTPException(status_code=401, detail='unauthorized')
    response = Response(status_code=200)
    set_token_cookie(response, body.token, secure=request.url.scheme == 'https')
    log.info('Login accepted')
    return response


@api.get('/tabs', response_model=List[db.Tab])
def list_tabs(conn: sqlite3.Connection = Depends(get_conn)):
    try:
        return db.list_tabs(conn)
    except sqlite3.Error as e:
        log.exception('Listing tabs failed')
        raise HTTPException(status_code=500, detail=str(e))


@api.post('/tabs', response_model=db.Tab)
def create_tab(req: CreateTabRequest, conn: sqlite3.Connection = Depends(get_conn)):
    try:
        tab = db.create_tab(conn, req.name)
    except sqlite3.Error as e:
        log.exception('Creating tab failed')
        raise HTTPException(status_code=500, detail=str(e))
    log.info(f'Created tab {tab.id} ({tab.name!r})')
    return tab


@api.post('/tabs/delete')
def delete_tab(req: DeleteTabRequest, conn: sqlite3.Connection = Depends(get_conn)):
    try:
        db.delete_tab(conn, req.id)
    except sqlite3.Error as e:
        log.exception(f'Deleting tab {req.id} failed')
        raise HTTPException(status_code=500, detail=str(e))
    log.info(f'Deleted tab {req.id}')
    return Response(status_code=200)


@api.post('/tabs/rename')
def rename_tab(req: RenameTabRequest, conn: sqlite3.Connection = Depends(get_conn)):
    try:
        updated = db.rename_tab(conn, req.id, req.name)
    except sqlite3.Error as e:
        log.exception(f'Renaming tab {req.id} failed')
        raise HTTPException(status_code=500, detail=str(e))
    if updated:
        log.info(f'Renamed tab {req.id} to {req.name!r}')
    else:
        log.debug(f'Rename of unknown tab {req.id} ignored')
    return Response(status_code=200)


@api.get('/keyvalues', response_model=List[db.KeyValue])
def get_key_values(tab_id: Optional[str] = None, conn: sqlite3.Connection = Depends(get_conn)):
    if not tab_id:
        raise HTTPException(status_code=400, detail='tab_id required')
    try:
        return db.get_key_values(conn, tab_id)
    except sqlite3.Error as e:
        log.exception(f'Reading key values for tab {tab_id} failed')
        raise HTTPException(status_code=500, detail=str(e))


@api.post('/keyvalues')
def replace_key_values(req: ReplaceKeyValuesRequest, conn: sqlite3.Connection = Depends(get_conn)):
    try:
        count = db.replace_key_values(conn, req.tab_id, req.key_values or {})
    except sqlite3.Error as e:
        log.exception(f'Replacing key values for tab {req.tab_id} failed')
        raise HTTPException(status_code=500, detail=str(e))
    log.info(f'Stored {count} key values for tab {req.tab_id}')
    return Response(status_code=200)


@api.post('/submit', response_class=PlainTextResponse)
def submit(req: SubmitRequest, audit: AuditLog = Depends(get_audit)):
    audit.record(req.tab_name, req.key_values or {})
    log.debug(f'Submission logged for tab {req.tab_name!r}')
    return PlainTextResponse('Logged successfully')


async def bad_request(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={'detail': describe_errors(exc.errors())})


def create_app(conn: sqlite3.Connection, tokens: TokenStore, audit: AuditLog,
               static_dir: Optional[pathlib.Path] = None) -> FastAPI:
    app = FastAPI(title='KeyJournal', version='0.1.0')
    app.state.conn = conn
    app.state.tokens = tokens
    app.state.audit = audit
    app.state.static_dir = static_dir or settings.STATIC_DIR
    app.add_exception_handler(RequestValidationError, bad_request)
    app.middleware('http')(auth_middleware)
    app.include_router(home)
    app.include_router(api)
    return app


def main():
    configure()
    settings.ensure_dirs()
    tokens = TokenStore.from_env()
    if tokens.enabled:
        log.info(f'Auth enabled with {len(tokens)} token(s)')
    else:
        log.warning('No tokens configured; all endpoints are open')
    try:
        db.init()
        conn = db.connect()
    except sqlite3.Error:
        log.critical('Failed to initialize database', exc_info=True)
        raise
    try:
        audit = AuditLog.open()
    except OSError:
        log.critical('Failed to initialize audit log', exc_info=True)
        conn.close()
        raise
    try:
        log.info(f'Server starting on :{settings.PORT}...')
        uvicorn.run(create_app(conn, tokens, audit), host=settings.HOST, port=settings.PORT)
    finally:
        audit.close()
        conn.close()


if __name__ == '__main__':
    main()
