import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.concurrency import run_in_threadpool

from mediastore import models  # noqa: F401  registers tables on Base.metadata
from mediastore.core.config import Settings, settings as default_settings
from mediastore.core.database import Base, make_engine, make_sessionmaker
from mediastore.core.errors import ErrorKind, MediaStoreError
from mediastore.core.minio_client import build_gateway, initialize_bucket
from mediastore.monitoring.setup import setup_monitoring
from mediastore.routes import auth, files, users
from mediastore.services.file_lifecycle import FileLifecycleCoordinator

logger = logging.getLogger("mediastore")

ERROR_STATUS = {
    ErrorKind.INVALID_PARAMETERS: 422,
    ErrorKind.FILE_NOT_FOUND: 404,
    ErrorKind.FILE_DELETED: 410,
    ErrorKind.ALREADY_DELETED: 409,
    ErrorKind.UPLOAD_INCOMPLETE: 409,
    ErrorKind.UPLOAD_MISMATCH: 409,
    ErrorKind.INVALID_REFERENCE: 400,
    ErrorKind.ACCESS_DENIED: 502,
    ErrorKind.NETWORK_ERROR: 503,
    ErrorKind.UNKNOWN_ERROR: 502,
    ErrorKind.STORAGE_RECORD_MISSING: 500,
}


async def handle_mediastore_error(request: Request, exc: MediaStoreError):
    status_code = ERROR_STATUS.get(exc.kind, 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s: %s", request.method, request.url.path, exc.kind.value, exc.message)
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.kind.value})


def create_app(settings: Settings = default_settings, provision: bool = True) -> FastAPI:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = make_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
        app.state.engine = engine
        app.state.sessions = make_sessionmaker(engine)
        try:
            async with engine.begin() as conn:
                logger.info("Creating database tables:")
                for table in Base.metadata.tables.values():
                    logger.info(f" - Table: {table.name}")
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            raise

        app.state.gateway = build_gateway(settings)
        if provision:
            try:
                await run_in_threadpool(initialize_bucket, app.state.gateway, settings.S3_BUCKET)
                logger.info("Object storage initialized")
            except Exception as e:
                logger.error(f"Object storage initialization failed: {e}")
                raise

        app.state.coordinator = FileLifecycleCoordinator(app.state.sessions, app.state.gateway, settings.S3_BUCKET)

        yield

        await engine.dispose()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="mediastore",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(MediaStoreError, handle_mediastore_error)

    app.include_router(auth)
    app.include_router(users)
    app.include_router(files)

    setup_monitoring(app)

    @app.get("/health")
    async def health_check(request: Request):
        try:
            async with request.app.state.sessions() as session:
                await session.execute(text("SELECT 1"))
            db_status = "ok"
        except Exception as e:
            db_status = f"error: {str(e)}"

        try:
            await run_in_threadpool(request.app.state.gateway.ping)
            storage_status = "ok"
        except Exception as e:
            storage_status = f"error: {str(e)}"

        return {
            "status": "running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "database": db_status,
            "storage": storage_status
        }

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info",
        timeout_keep_alive=60,
        limit_concurrency=100
    )
