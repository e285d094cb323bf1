"""
FastAPI application for the drink sync API.

Provides REST endpoints for:
- Syncing batches of scraped drinks
- Looking up drinks by checksum
- Reading the subcategory map

Run with:
    cd backend
    uvicorn drink_api.main:app --reload --port 8000
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from pydantic import BaseModel

from .routes import drinks, subcategories
from .services.database import drink_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Initializes database connection on startup and closes it on shutdown.
    """
    # Startup
    try:
        drink_store.initialize()
        print("Database connection initialized")
    except Exception as e:
        print(f"Warning: Could not initialize database: {e}")
        print("Some endpoints may not work without database connection")

    yield

    # Shutdown
    drink_store.close()
    print("Database connection closed")


app = FastAPI(
    title="Drink Sync API",
    description="Sync scraped drinks into the products database",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(drinks.router)
app.include_router(subcategories.router)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: datetime
    database: str


@app.get("/api/health", response_model=HealthResponse, tags=["health"])
def health_check():
    """
    Health check endpoint.

    Returns:
        Health status including database connectivity
    """
    db_status = "unknown"

    try:
        drink_store.ping()
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)}"

    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
    )


@app.get("/", tags=["root"])
def root():
    """
    Root endpoint with API information.

    Returns:
        API welcome message and documentation link
    """
    return {
        "message": "Drink Sync API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }
