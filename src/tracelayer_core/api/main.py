"""TraceLayer Core FastAPI application - Solo mode (no authentication)."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tracelayer_core.config import get_settings
from .routers import projects, pipeline, conflicts, sharing, api_keys, integrations

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("tracelayer-core")

settings = get_settings()
logger.info("Starting TraceLayer Core API (solo mode - no authentication)")

# Create FastAPI app
app = FastAPI(
    title="TraceLayer Core API",
    description="Requirements intelligence from business communications",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware - Open for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(projects.router, prefix="/api/v1/projects")
app.include_router(pipeline.router, prefix="/api/v1/pipeline")
app.include_router(conflicts.router, prefix="/api/v1/conflicts")
app.include_router(sharing.router, prefix="/api/v1/sharing")
app.include_router(api_keys.router, prefix="/api/v1/api-keys")
app.include_router(integrations.router, prefix="/api/v1/integrations")


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "TraceLayer Core API",
        "version": "1.0.0",
        "mode": "solo",
        "authentication": False,
        "docs": "/docs",
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "mode": "solo"}
