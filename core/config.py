# core/config.py
import os
from pydantic_settings import BaseSettings
from dotenv import load_dotenv
import logging
from typing import List, Optional

# Load variables from .env file located in the project root directory
dotenv_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env')
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path=dotenv_path)
else:
    load_dotenv() # Fallback

class Settings(BaseSettings):
    """Loads configuration settings from environment variables and .env file."""

    # --- Storage Backend ---
    STORAGE_BACKEND: str = "azure" # "azure" or "supabase"
    AZURE_STORAGE_CONNECTION_STRING: Optional[str] = None

    # --- Supabase Configuration (alternative backend) ---
    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_KEY: Optional[str] = None # SERVICE_ROLE key, needed to create buckets

    # --- Containers & Listing ---
    DEFAULT_CONTAINER: str = "product-dashboard"
    LIST_MAX_RESULTS: int = 50
    GALLERY_MAX_IMAGES: int = 20
    GALLERY_REFRESH_INTERVAL: Optional[float] = None # seconds, None disables polling

    # --- Client-side Validation ---
    ALLOWED_MIME_TYPES: List[str] = ["image/jpeg", "image/png", "image/gif", "image/webp"]
    MAX_UPLOAD_SIZE_MB: float = 5
    MAX_BATCH_FILES: int = 10
    UPLOAD_BODY_LIMIT_MB: float = 8

    # --- Simulated Upload Progress ---
    PROGRESS_TICK_SECONDS: float = 0.2
    PROGRESS_STEPS: int = 10
    PROGRESS_STEP_SIZE: int = 9
    PROGRESS_CAP: int = 95

    # --- Service URLs ---
    GATEWAY_MODE: str = "http" # "http" calls the gateway service, "local" calls actions in-process
    IMAGE_GATEWAY_URL: str = "http://localhost:8010"
    UI_SERVICE_URL: str = "http://localhost:7860"
    GATEWAY_HTTP_TIMEOUT: Optional[float] = 120.0

    class Config:
        env_file = '.env'
        env_file_encoding = 'utf-8'
        extra = 'ignore'

# Instantiate settings once for import
settings = Settings()

# --- Logging Setup ---
log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_str, logging.INFO)
logging.basicConfig(level=log_level, format='%(asctime)s - %(name)s - [%(levelname)s] - %(message)s', datefmt='%Y-%m-%d %H:%M:%S')
logger = logging.getLogger("IMS_Core")
logging.getLogger("httpx").setLevel(logging.WARNING); logging.getLogger("supabase").setLevel(logging.WARNING)
logging.getLogger("azure").setLevel(logging.WARNING); logging.getLogger("watchfiles").setLevel(logging.WARNING)

# --- Configuration Validation Checks ---
logger.info(f"Core Settings loaded. Log Level: {log_level_str}")
if settings.STORAGE_BACKEND not in ("azure", "supabase"):
    logger.error(f"Unknown STORAGE_BACKEND '{settings.STORAGE_BACKEND}'. Gateway calls will fail.")
elif settings.STORAGE_BACKEND == "azure" and not settings.AZURE_STORAGE_CONNECTION_STRING:
    logger.warning("AZURE_STORAGE_CONNECTION_STRING missing. Every gateway call will fail until it is set.")
elif settings.STORAGE_BACKEND == "supabase" and (not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_KEY):
    logger.warning("Supabase URL/Service Key missing. Every gateway call will fail until they are set.")
else:
    logger.info(f"Using '{settings.STORAGE_BACKEND}' storage backend, default container: {settings.DEFAULT_CONTAINER}")

if settings.MAX_UPLOAD_SIZE_MB <= 0: logger.error(f"Invalid MAX_UPLOAD_SIZE_MB: {settings.MAX_UPLOAD_SIZE_MB}.")
if settings.GATEWAY_MODE not in ("http", "local"): logger.warning(f"Unknown GATEWAY_MODE '{settings.GATEWAY_MODE}', falling back to 'http'.")
logger.info(f"Upload limits: types={settings.ALLOWED_MIME_TYPES}, max size={settings.MAX_UPLOAD_SIZE_MB}MB, max batch={settings.MAX_BATCH_FILES}")
