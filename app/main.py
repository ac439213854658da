"""
FastAPI application factory
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from app.api.v1 import budget
from app.application.errors import InternalError, LedgerError
from app.application.ledger import LedgerStore
from app.application.scheduler import shutdown_scheduler, start_scheduler
from app.config import Settings, get_settings

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _error_body(code: str, message: str, details=None) -> dict:
    return {"error": {"code": code, "message": message, "details": details}}


def build_ledger(settings: Settings) -> LedgerStore:
    return LedgerStore(
        settings.BUDGET_FILE_PATH,
        settlement_month=settings.SETTLEMENT_MONTH,
        vocabulary=settings.vocabulary(),
        save_settle_seconds=settings.SAVE_SETTLE_SECONDS,
    )


def create_app(settings: Settings | None = None, ledger: LedgerStore | None = None) -> FastAPI:
    """
    Application factory - builds and configures the FastAPI app

    Args:
        settings: overrides get_settings() (tests)
        ledger: pre-built store; when given the lifespan neither loads it
            nor starts the file watch

    Returns:
        Configured FastAPI app
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if ledger is not None:
            app.state.ledger = ledger
            yield
            return

        store = build_ledger(settings)
        store.start()
        app.state.ledger = store
        if settings.WATCH_ENABLED:
            start_scheduler(store, settings.WATCH_INTERVAL_SECONDS)
        try:
            yield
        finally:
            shutdown_scheduler()

    app = FastAPI(
        title="Budget Ledger",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    if ledger is not None:
        app.state.ledger = ledger

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code, exc.message, exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = [
            {"loc": list(err.get("loc", ())), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=_error_body("VALIDATION_ERROR", "Invalid request data", details),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        error = InternalError()
        message = f"{error.message}: {exc}" if settings.DEBUG else error.message
        return JSONResponse(
            status_code=error.status_code,
            content=_error_body(error.code, message),
        )

    # Routers
    app.include_router(budget.router)

    # Health checks
    @app.get("/health", response_class=PlainTextResponse, tags=["system"])
    def health():
        """Health check endpoint"""
        return "ok"

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
