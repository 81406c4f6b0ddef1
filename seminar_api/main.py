import asyncio
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from seminar_api.config import settings
from seminar_api.core.logging import setup_logging
from seminar_api.core.exceptions import api_exception_handler, general_exception_handler, APIError
from seminar_api.core.middleware import request_logging_middleware
from seminar_api.database import DatabasePool, apply_schema

# Initialize logging
setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown"""
    if settings.auto_create_schema:
        await apply_schema()

    # Startup: Start background reconciliation task
    reconciliation_task = None
    if settings.enable_jobs:
        from seminar_api.tasks.reconciliation import run_reconciliation_loop
        reconciliation_task = asyncio.create_task(run_reconciliation_loop())

    yield

    # Shutdown: Cancel background task
    if reconciliation_task:
        reconciliation_task.cancel()
        try:
            await reconciliation_task
        except asyncio.CancelledError:
            pass

    await DatabasePool.close_pool()


app = FastAPI(
    title="Seminar Registration API",
    description="Order and payment lifecycle for paid seminar registration",
    version="1.0.0",
    debug=settings.debug,
    docs_url="/docs",
    redirect_slashes=True,
    lifespan=lifespan
)

# Exception handlers
app.add_exception_handler(APIError, api_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.middleware("http")(request_logging_middleware)

# Import and include routers
from seminar_api.routers import orders, webhooks, cron

# Checkout (public)
app.include_router(orders.router, prefix="/orders", tags=["orders"])

# Gateway callbacks (signature verified)
app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

# Scheduler triggers (CRON_SECRET)
app.include_router(cron.router, prefix="/cron", tags=["cron"])

@app.get("/")
async def root():
    return {
        "service": "Seminar Registration API",
        "version": "1.0.0",
        "database": settings.db_name,
        "environment": settings.app_env
    }

@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "database": settings.db_name,
        "host": settings.db_host
    }

# Auto-start server if run directly
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "seminar_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
