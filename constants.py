import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8080))
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

PUBLIC_DIR = os.getenv("PUBLIC_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "public"))

DEFAULT_ROOM = os.getenv("DEFAULT_ROOM", "default")
CONNECTION_ID_LENGTH = int(os.getenv("CONNECTION_ID_LENGTH", 7))

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

# seconds a single outbound send may take before it counts as failed
SEND_TIMEOUT = float(os.getenv("SEND_TIMEOUT", 5.0))
