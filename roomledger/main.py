import logging
import os

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from .app.errors import LedgerError
from .app.routes.awards import router as rooms_router
from .app.routes.billing import router as billing_router
from .app.routes.entitlements import router as entitlements_router
from .app.routes.usage import router as usage_router
from .app.services.auth import CurrentUser, get_current_user
from .app.services.billing import get_billing_service
from .app.services.ledger import get_ledger_config, set_document_store
from .middleware_perf import RequestTimingMiddleware

logger = logging.getLogger("ledger")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]

app = FastAPI(title="Room Ledger API")

app.add_middleware(RequestTimingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(entitlements_router)
app.include_router(usage_router)
app.include_router(rooms_router)
app.include_router(billing_router)


@app.exception_handler(LedgerError)
async def handle_ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": dict(exc.payload)})


@app.on_event("startup")
async def setup_document_store() -> None:
    config = get_ledger_config()
    if config.store_backend != "postgres":
        return
    from .app.store.postgres import PostgresDocumentStore, create_document_store_pool

    pool = await create_document_store_pool(config)
    store = PostgresDocumentStore(pool, max_attempts=config.txn_max_attempts)
    await store.ensure_schema()
    app.state.document_pool = pool
    set_document_store(store)
    get_billing_service.cache_clear()
    logger.info("Using PostgreSQL document store at %s:%s/%s", config.db_host, config.db_port, config.db_name)


@app.on_event("shutdown")
async def teardown_document_store() -> None:
    pool = getattr(app.state, "document_pool", None)
    if pool is not None:
        await pool.close()
        app.state.document_pool = None


@app.get("/api/auth/me", response_model=CurrentUser)
def read_current_user(current_user: CurrentUser = Depends(get_current_user)):
    return current_user


@app.get("/api/healthz")
def healthz():
    return {"ok": True}
