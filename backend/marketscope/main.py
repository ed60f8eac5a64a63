import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .database import init_db
from .errors import debug_enabled
from .routes.analyses import router as analyses_router
from .routes.personas import router as personas_router


# Load environment variables from .env file
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):

    # Startup
    init_db()
    logger.info("Starting MarketScope analysis service")
    logger.info("   OpenAI Key:      %s", "Configured" if os.getenv("OPENAI_API_KEY") else "Not set (pipeline steps will use fallbacks)")
    logger.info("   Perplexity Key:  %s", "Configured" if os.getenv("PERPLEXITY_API_KEY") else "Not set (competitor discovery returns none)")

    yield

    logger.info("Shutting down MarketScope analysis service")


app = FastAPI(
    title="MarketScope Competitive Analysis API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",      # Next.js dev server
        "http://127.0.0.1:3000",
        "http://localhost:3001",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analyses_router)
app.include_router(personas_router)


@app.get(
    "/",
    summary="API Root",
    description="Welcome endpoint with API information",
    tags=["General"]
)
async def root():
    """Root endpoint with API information."""
    return {
        "name": "MarketScope",
        "version": "0.1.0",
        "description": "Competitive market analysis for app ideas",
        "docs": "/docs",
        "endpoints": {
            "create": "POST /analyses - Submit an app idea for analysis",
            "status": "GET /analyses/{id}/status - Poll pipeline progress",
            "report": "GET /analyses/{id} - Full analysis report",
        }
    }


@app.get(
    "/health",
    summary="Global Health Check",
    description="Check if the API server is running",
    tags=["General"]
)
async def health():
    """Global health check endpoint."""
    return {
        "status": "healthy",
        "service": "marketscope",
        "version": "0.1.0"
    }


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "detail": str(exc) if debug_enabled() else "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "marketscope.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=debug_enabled(),
    )
