"""
FastAPI application for medical form field analysis.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import datetime
import logging

from medforms.config import Config
from medforms.models import HealthResponse
from medforms.routes.field_analysis import router as field_analysis_router

# Configure logging
logging.basicConfig(
    level=Config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

# Initialize FastAPI app
app = FastAPI(
    title="Medical Form Field Analysis API",
    description="API for turning document-analysis output into validated, overlay-ready form fields",
    version=API_VERSION
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(field_analysis_router)


@app.on_event("startup")
async def startup_event():
    """Validate configuration on startup."""
    try:
        Config.validate()
        logger.info("Configuration validated successfully")
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        raise


@app.get("/api/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(),
        version=API_VERSION,
        components={
            "geometry_normalizer": "ready",
            "field_classifier": "ready",
            "capacity_calculator": "ready",
            "conflict_detector": "ready",
            "aggregate_scorer": "ready"
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "medforms.main:app",
        host=Config.API_HOST,
        port=Config.API_PORT,
        reload=True
    )
