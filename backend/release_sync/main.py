import logging

from dotenv import find_dotenv, load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from release_sync.core.logging_config import setup_logging
from release_sync.exception_handlers import app_exception_handler, unhandled_exception_handler
from release_sync.exceptions import AppException

# Load environment variables
_ = load_dotenv(find_dotenv())

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Release Sync API",
    description="GitHub App integration and release synchronization",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Adjust this for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# Import and register routers
from release_sync.api.routers import github, health as queue_health
app.include_router(github.router, prefix="/api")
app.include_router(queue_health.router, prefix="/api")


@app.get("/health")
async def health_check():
    """Root health check endpoint."""
    return {"status": "healthy"}
