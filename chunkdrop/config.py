import os

from dotenv import load_dotenv
load_dotenv()

# Chunking settings
RAW_CHUNK_SIZE = int(os.getenv("RAW_CHUNK_SIZE", 6000))  # Bytes per chunk before compression
SMART_CUT_LOOKBACK = int(os.getenv("SMART_CUT_LOOKBACK", 500))
SMART_CUT_CHARS = b", \n\r}]:;\t"  # Safe break points
ENCODING_NAME = "gzip+base64"

# Whitelist of characters kept when a session asks for clean output
ALLOWED_OUTPUT_CHARS = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
    " ,.!?:;-_'\"()[]{}/<>@#$%^&*+=\n"
)

# Session settings
SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", 30 * 60))
CLEANUP_INTERVAL_SECONDS = int(os.getenv("CLEANUP_INTERVAL_SECONDS", 5 * 60))
DEFAULT_SESSION_TITLE = "File Upload"

# File upload settings
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", 10 * 1024 * 1024))  # 10MB in bytes

# Rate limiting
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
SESSION_RATE_LIMIT = int(os.getenv("SESSION_RATE_LIMIT", 10))  # per minute
UPLOAD_RATE_LIMIT = int(os.getenv("UPLOAD_RATE_LIMIT", 5))  # per minute

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# CORS settings
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost,http://localhost:8080,http://localhost:5500,http://127.0.0.1:5500",
    ).split(",")
    if origin.strip()
]
