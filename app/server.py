"""
Ascend Academy - FastAPI web server
Sessions, registration, check-in and billing webhook

Data source: Supabase (in-memory fallback when not configured)
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from app.academy import academy_router
from app.config import configure_logging, get_settings
from database.store import get_store

configure_logging()

app = FastAPI(
    title="Ascend Academy",
    description="Membership, session registration and attendance for a youth sports academy",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Academy router
app.include_router(academy_router, prefix="/api")


@app.on_event("startup")
async def startup_event():
    store = get_store()
    logger.info(f"Server started - store: {type(store).__name__}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Server stopped")


@app.get("/api/status")
async def api_status():
    """Data source status"""
    settings = get_settings()
    store = get_store()
    status = {
        "store": type(store).__name__,
        "stripe_mode": settings.STRIPE_MODE,
        "walk_in_checkin": settings.ALLOW_WALK_IN_CHECKIN,
        "enforce_capacity": settings.ENFORCE_CAPACITY,
    }

    if settings.supabase_configured:
        from database.supabase_client import get_supabase_client, row_counts
        status["tables"] = row_counts(get_supabase_client())

    return status


# ==================== Run ====================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.server:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
