# services/image_gateway/app/main.py
from fastapi import FastAPI
from core.config import settings
from core.models import GatewayResponse
import logging
from contextlib import asynccontextmanager

# Use logger configured in core.config
logger = logging.getLogger("IMS_Core").getChild("ImageGateway")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Backend clients are opened per call, so startup only records the configuration in use
    logger.info(f"Image Gateway lifespan startup: backend='{settings.STORAGE_BACKEND}', default container='{settings.DEFAULT_CONTAINER}'.")
    app.state.storage_backend = settings.STORAGE_BACKEND
    yield # Application runs here
    logger.info("Image Gateway lifespan shutdown.")

# --- FastAPI App ---
app = FastAPI(
    title="Image Gateway",
    description="Upload, list and delete images in blob storage containers",
    version="1.0.0",
    lifespan=lifespan
)

# --- Health Check ---
@app.get("/health", response_model=GatewayResponse, tags=["Meta"])
async def health_check():
    return GatewayResponse(
        status="success",
        data={"backend": settings.STORAGE_BACKEND, "default_container": settings.DEFAULT_CONTAINER},
        message="Image Gateway is running",
    )

# --- Routing ---
# Import routers AFTER app is defined
from .routers import images

app.include_router(images.router, prefix="/images", tags=["Images"])

@app.get("/", response_model=GatewayResponse, tags=["Meta"])
async def read_root():
    return GatewayResponse(status="success", message="Welcome to the Image Gateway")
