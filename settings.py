import os

# Environment
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
IS_PRODUCTION = ENVIRONMENT == "production"
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

API_VERSION = os.getenv("API_VERSION", "v1")
API_PREFIX = f"/api/{API_VERSION}"
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGIN", "http://localhost:3000").split(",") if o.strip()]

# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# Auth
DEFAULT_JWT_SECRET = "dev-secret"
JWT_SECRET = os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET)
JWT_ALG = "HS256"
TOKEN_EXPIRE_MIN = int(os.getenv("TOKEN_EXPIRE_MIN", str(60 * 12)))
AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "hb_admin_token")
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@hanumanbhatta.in")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "Admin@123")
ADMIN_NAME = os.getenv("ADMIN_NAME", "Hanuman Bhatta Admin")

# Business
WHATSAPP_NUMBER = os.getenv("WHATSAPP_NUMBER", "+91 98765 43210")
BRICKS_PER_TROLLEY = int(os.getenv("BRICKS_PER_TROLLEY", "3000"))
