"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from app.api import router as api_router
from app.core.adaptive_pipeline import build_services


@asynccontextmanager
async def lifespan(app: FastAPI):
    # One classifier/breaker and one rule store per process
    app.state.adaptive = build_services()
    yield


app = FastAPI(
    title="Adaptive Scoring Engine",
    description="Business-model-aware scoring, gating and rule-based policy service",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
