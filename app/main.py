from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn
import logging

from app.analysis.gemini import GeminiAnalyzer
from app.storage.dynamodb import DynamoDBService
from app.storage.s3 import S3Service
from app.settings import settings
from app.routers.image_service import router as image_router
from app.exceptions import add_exception_handlers

logging.basicConfig(level=settings.log_level)
log = logging.getLogger("image-search-service")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
        Async context manager for FastAPI application lifecycle events.
        Builds the S3, DynamoDB and Gemini clients once and shares them
        through app.state. Clients already placed on app.state are kept.
    """
    # Initialize resources
    if getattr(app.state, "settings", None) is None:
        app.state.settings = settings
    if getattr(app.state, "s3", None) is None:
        app.state.s3 = S3Service(app.state.settings)
    if getattr(app.state, "db", None) is None:
        app.state.db = DynamoDBService(app.state.settings)
    if getattr(app.state, "analyzer", None) is None:
        app.state.analyzer = GeminiAnalyzer(app.state.settings)
    yield
    # Cleanup resources
    app.state.s3.close()
    app.state.db.close()
    app.state.analyzer.close()

# Initialize App
app = FastAPI(
    title=settings.app_title,
    lifespan=lifespan,
    description="Image upload, AI tagging and keyword search",
    root_path="/api"
)

# Add exception handlers
add_exception_handlers(app)

# CORS - Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=['*'],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add the routers
app.include_router(image_router)

# Check Health
@app.get("/")
def read_root():
    """
        Default end point

    """
    return "Image Search Service is running."

if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
