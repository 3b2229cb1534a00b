import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from splitledger.config import get_settings
from splitledger.db.database import Base, engine, check_db_connection, is_contention_error
from splitledger.errors import LedgerError
from splitledger.events.publisher import EventPublisher, build_event_publisher
# Every model must be mapped before create_all and before any query
from splitledger.models import groups, expenses, debts, settlements  # noqa: F401
from splitledger.api.v1.routes.groups import router as groups_router
from splitledger.api.v1.routes.expenses import router as expenses_router
from splitledger.api.v1.routes.debts import router as debts_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    yield
    app.state.event_publisher.close()


async def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def database_error_handler(request: Request, exc: OperationalError):
    # Lock waits that happen outside a ledger transaction
    if is_contention_error(exc):
        logger.warning(f"Database busy on {request.url.path}: {exc.orig}")
        return JSONResponse(status_code=409, content={"detail": "The ledger is busy, please retry"})
    logger.error(f"Database error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(publisher: Optional[EventPublisher] = None) -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(
        title="Split Ledger",
        description="Group expenses, net debts and settlements",
        version="1.0.0",
        lifespan=lifespan
    )

    # Injected, so tests and workers can each supply their own bus handle
    app.state.event_publisher = publisher or build_event_publisher(
        settings.rabbitmq_url, settings.events_exchange
    )

    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(OperationalError, database_error_handler)

    app.include_router(groups_router)
    app.include_router(expenses_router)
    app.include_router(debts_router)

    @app.get("/")
    def read_root():
        return {"message": "Split Ledger API", "version": "1.0.0"}

    @app.get("/health")
    def health_check():
        if not check_db_connection():
            return JSONResponse(status_code=503, content={"status": "unhealthy"})
        return {"status": "healthy"}

    return app


app = create_app()
