import logging
import secrets
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tasklist_engine.auth import (
    Identity,
    SessionAuthority,
    UserRegistry,
    parse_basic_credentials,
    parse_bearer_token,
)
from tasklist_engine.config import Settings, get_settings
from tasklist_engine.contracts import ContentRequest, LoginRequest, RegisterRequest
from tasklist_engine.db import InMemoryStore, KeyValueStore, SqliteStore
from tasklist_engine.dispatch import WorkerResult, dispatch
from tasklist_engine.domain import ResourceRequest
from tasklist_engine.errors import ResultKind, Unauthorized, WorkerError
from tasklist_engine.tasklists import TaskListWorker
from tasklist_engine.tasks import TaskWorker

logger = logging.getLogger(__name__)

STATUS_CODES = {
    ResultKind.SUCCESS: 200,
    ResultKind.INVALID_ARGUMENT: 400,
    ResultKind.NOT_FOUND: 404,
    ResultKind.CONFLICT: 409,
    ResultKind.STORE_ERROR: 500,
}


def build_store(settings: Settings) -> KeyValueStore:
    if settings.store_backend == "memory":
        return InMemoryStore()
    return SqliteStore(settings.db_path, timeout=settings.db_timeout_s)


def encode_result(result: WorkerResult, field: Optional[str] = None, success_status: int = 200) -> JSONResponse:
    if not result.ok:
        return JSONResponse(
            status_code=STATUS_CODES[result.kind],
            content={"msg": "failed", "kind": result.kind.value, "detail": result.detail},
        )
    content = {"msg": "success"}
    if field is not None:
        content[field] = result.payload
    return JSONResponse(status_code=success_status, content=content)


def current_identity(request: Request) -> Identity:
    # older clients send the token in an "Authentication" header
    header = request.headers.get("Authorization") or request.headers.get("Authentication")
    try:
        token = parse_bearer_token(header)
        return request.app.state.sessions.verify(token)
    except Unauthorized as exc:
        raise HTTPException(
            status_code=401,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from None


def create_app(settings: Optional[Settings] = None, store: Optional[KeyValueStore] = None) -> FastAPI:
    settings = settings or get_settings()
    store = store or build_store(settings)

    secret = settings.auth_secret
    if not secret:
        logger.warning("TASKLIST_AUTH_SECRET is not set, sessions will not survive a restart")
        secret = secrets.token_urlsafe(32)

    tasklists = TaskListWorker(store, max_attempts=settings.max_name_attempts)
    tasks = TaskWorker(store, tasklists.exists, max_attempts=settings.max_name_attempts)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        store.init()
        app.state.sessions.sweep_revoked()
        logger.info("store ready backend=%s", settings.store_backend)
        yield
        # Shutdown (nothing to release, connections are per call)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.store = store
    app.state.users = UserRegistry(store, iterations=settings.password_iterations)
    app.state.sessions = SessionAuthority(secret, store, ttl_seconds=settings.token_ttl_s)
    app.state.tasklists = tasklists
    app.state.tasks = tasks

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        detail = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}" for err in exc.errors()
        )
        return encode_result(WorkerResult(ResultKind.INVALID_ARGUMENT, detail=detail))

    @app.exception_handler(WorkerError)
    async def worker_failure(request: Request, exc: WorkerError):
        # raised outside dispatch, e.g. by the auth layer touching the store
        logger.error("unhandled %s on %s: %s", exc.kind.value, request.url.path, exc.detail)
        return encode_result(WorkerResult(exc.kind, detail=exc.detail))

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    # users

    @app.post("/v1/users/register")
    def register(req: RegisterRequest):
        result = dispatch(app.state.users.register, req.name, req.email, req.passwd)
        return encode_result(result, "email", success_status=201)

    @app.post("/v1/users/login")
    def login(request: Request, req: Optional[LoginRequest] = None):
        try:
            if req is not None:
                email, password = req.email, req.passwd
            else:
                email, password = parse_basic_credentials(request.headers.get("Authorization"))
            identity = app.state.users.authenticate(email, password)
        except Unauthorized as exc:
            raise HTTPException(
                status_code=401,
                detail=str(exc),
                headers={"WWW-Authenticate": "Basic"},
            ) from None
        token = app.state.sessions.issue(identity)
        return {"msg": "success", "token": token, "token_type": "bearer"}

    @app.post("/v1/users/logout")
    def logout(request: Request, identity: Identity = Depends(current_identity)):
        header = request.headers.get("Authorization") or request.headers.get("Authentication")
        app.state.sessions.revoke(parse_bearer_token(header))
        return {"msg": "success"}

    # task lists

    @app.get("/v1/task_lists")
    def get_all_tasklist(identity: Identity = Depends(current_identity)):
        return encode_result(dispatch(tasklists.get_all_tasklist, identity), "task_lists")

    @app.post("/v1/task_lists/create")
    def create_tasklist(req: ContentRequest, identity: Identity = Depends(current_identity)):
        result = dispatch(tasklists.create, identity, req.to_content())
        return encode_result(result, "name", success_status=201)

    @app.get("/v1/task_lists/{list_key}")
    def query_tasklist(list_key: str, identity: Identity = Depends(current_identity)):
        result = dispatch(tasklists.query, ResourceRequest(identity, list_key))
        if result.ok:
            result = WorkerResult(result.kind, result.payload.as_dict())
        return encode_result(result, "task_list")

    @app.put("/v1/task_lists/{list_key}")
    def revise_tasklist(list_key: str, req: ContentRequest, identity: Identity = Depends(current_identity)):
        result = dispatch(tasklists.revise, ResourceRequest(identity, list_key), req.to_content())
        return encode_result(result)

    @app.delete("/v1/task_lists/{list_key}")
    def delete_tasklist(list_key: str, identity: Identity = Depends(current_identity)):
        request = ResourceRequest(identity, list_key)
        # tasks go first: if that fails the list is still there to retry on
        result = dispatch(tasks.purge, request)
        if result.ok:
            result = dispatch(tasklists.delete, request)
        return encode_result(result)

    # tasks

    @app.get("/v1/task_lists/{list_key}/tasks")
    def get_all_tasks_name(list_key: str, identity: Identity = Depends(current_identity)):
        result = dispatch(tasks.get_all_tasks_name, ResourceRequest(identity, list_key))
        return encode_result(result, "tasks")

    @app.post("/v1/task_lists/{list_key}/tasks/create")
    def create_task(list_key: str, req: ContentRequest, identity: Identity = Depends(current_identity)):
        result = dispatch(tasks.create, ResourceRequest(identity, list_key), req.to_content())
        return encode_result(result, "name", success_status=201)

    @app.get("/v1/task_lists/{list_key}/tasks/{task_key}")
    def query_task(list_key: str, task_key: str, identity: Identity = Depends(current_identity)):
        result = dispatch(tasks.query, ResourceRequest(identity, list_key, task_key))
        if result.ok:
            result = WorkerResult(result.kind, result.payload.as_dict())
        return encode_result(result, "task")

    @app.put("/v1/task_lists/{list_key}/tasks/{task_key}")
    def revise_task(
        list_key: str,
        task_key: str,
        req: ContentRequest,
        identity: Identity = Depends(current_identity),
    ):
        result = dispatch(tasks.revise, ResourceRequest(identity, list_key, task_key), req.to_content())
        return encode_result(result)

    @app.delete("/v1/task_lists/{list_key}/tasks/{task_key}")
    def delete_task(list_key: str, task_key: str, identity: Identity = Depends(current_identity)):
        result = dispatch(tasks.delete, ResourceRequest(identity, list_key, task_key))
        return encode_result(result)

    return app
