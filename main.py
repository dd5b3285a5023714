from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import sessionmaker
import os

from core.config import logger
from core.errors import CatalogError
from utils.background import drain
from utils.blob_store import BlobStore, LocalBlobStore, build_blob_store
from utils.catalog import CatalogRepository
from utils.catalog_query import CatalogQueryEngine
from utils.ingestion import IngestionSaga

# Routers
from routers import videos, healthcheck  # type: ignore

# ---- CORS setup ----
_default_origins = ",".join([
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
])
_origins_env = os.getenv("ALLOWED_ORIGINS") or os.getenv("CORS_ORIGINS") or _default_origins
ALLOWED_ORIGINS = [o.strip() for o in _origins_env.split(",") if o.strip()]


def create_app(engine=None, blob_store: BlobStore = None) -> FastAPI:
    """
    Build the application with an explicit engine and blob store.
    Both default to the configured ones; tests pass their own.
    """
    from core import database

    engine = engine or database.engine
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    blob_store = blob_store or build_blob_store()
    repository = CatalogRepository(session_factory)

    app = FastAPI(title="VideoTube")
    app.state.session_factory = session_factory
    app.state.blob_store = blob_store
    app.state.ingestion = IngestionSaga(repository, blob_store)
    app.state.catalog = CatalogQueryEngine(repository, blob_store)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Security headers ---
    @app.middleware("http")
    async def add_security_headers(request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        response.headers.setdefault("X-Frame-Options", "DENY")
        return response

    @app.exception_handler(CatalogError)
    async def catalog_error_handler(request: Request, exc: CatalogError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.on_event("startup")
    async def _init_schema():
        try:
            database.init_db(bind=engine)
        except Exception as _ex:
            logger.warning(f"init_db failed: {_ex}")

    @app.on_event("shutdown")
    async def _drain_background():
        await drain()

    if isinstance(blob_store, LocalBlobStore):
        os.makedirs(blob_store.root, exist_ok=True)
        app.mount("/static", StaticFiles(directory=blob_store.root), name="static")

    app.include_router(videos.router)
    app.include_router(healthcheck.router)

    @app.get("/")
    async def root():
        return {"ok": True}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
