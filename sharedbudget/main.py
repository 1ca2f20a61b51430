import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sharedbudget.config import Settings, load_settings
from sharedbudget.data.base import Database
from sharedbudget.domain.errors import AuthenticationError, BudgetAppError
from sharedbudget.presentation.auth_api import router as auth_router
from sharedbudget.presentation.budgets_api import router as budgets_router
from sharedbudget.presentation.income_api import router as income_router
from sharedbudget.presentation.invites_api import router as invites_router
from sharedbudget.presentation.purchases_api import router as purchases_router
from sharedbudget.presentation.recurring_api import router as recurring_router
from sharedbudget.presentation.reports_api import router as reports_router

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database = Database(settings.database_url)
        database.create_tables()
        app.state.database = database
        logger.info("SharedBudget API started")
        try:
            yield
        finally:
            database.dispose()
            logger.info("SharedBudget API stopped")

    app = FastAPI(title="SharedBudget API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BudgetAppError)
    async def budget_app_error_handler(request: Request, exc: BudgetAppError):
        headers = None
        if isinstance(exc, AuthenticationError):
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=exc.status_code, content={"detail": exc.message}, headers=headers
        )

    @app.get("/api/health", tags=["health"])
    def health():
        return {"ok": True, "hasDbUrl": bool(settings.database_url)}

    app.include_router(auth_router)
    app.include_router(budgets_router)
    app.include_router(purchases_router)
    app.include_router(income_router)
    app.include_router(recurring_router)
    app.include_router(reports_router)
    app.include_router(invites_router)
    return app


def run():
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
