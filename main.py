import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.exception_handlers import http_exception_handler
import uvicorn

import config
from database import Database
from exceptions import LedgerError
from routers import invoices_router, payments_router, paypal_router
from services.paypal_client import PayPalClient

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    database: Optional[Database] = None,
    paypal: Optional[PayPalClient] = None,
    create_tables: bool = False,
) -> FastAPI:
    """
    Build the API. The database handle is opened here (or injected) and
    disposed when the app shuts down.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = database or Database(config.build_database_url(), echo=config.SQL_ECHO)
        if create_tables:
            db.create_all()
        app.state.db = db
        app.state.paypal = paypal or PayPalClient()
        logger.info("Billing API started")
        try:
            yield
        finally:
            db.dispose()
            logger.info("Billing API stopped")

    app = FastAPI(title="Tutoring Billing API", lifespan=lifespan)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        if exc.http_status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})

    @app.get("/api/health")
    def health(request: Request):
        ok = request.app.state.db.check_connection()
        return JSONResponse(
            status_code=200 if ok else 503,
            content={"status": "ok" if ok else "degraded", "database": ok},
        )

    app.include_router(invoices_router)
    app.include_router(paypal_router)
    app.include_router(payments_router)

    # 404 fallback for unmatched routes; ledger NotFoundError keeps its own body
    @app.exception_handler(StarletteHTTPException)
    async def route_not_found_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            return JSONResponse(status_code=404, content={"error": "Route not found"})
        return await http_exception_handler(request, exc)

    @app.middleware("http")
    async def internal_error_middleware(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=config.PORT, reload=True)
