import os

# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "storefront")

# JWT Config
SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-change")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7))  # 7 days

# Catalog: "database" reads the product collections, "static" serves the seed list
CATALOG_SOURCE = os.getenv("CATALOG_SOURCE", "database")
PLACEHOLDER_IMAGE = os.getenv("PLACEHOLDER_IMAGE", "/placeholder.svg")

# Pricing
CURRENCY = os.getenv("CURRENCY", "LKR")
FREE_SHIPPING_THRESHOLD = float(os.getenv("FREE_SHIPPING_THRESHOLD", 10000))
FLAT_SHIPPING_FEE = float(os.getenv("FLAT_SHIPPING_FEE", 500))
TAX_RATE = float(os.getenv("TAX_RATE", 0.08))
DEFAULT_COUNTRY = os.getenv("DEFAULT_COUNTRY", "Sri Lanka")

# Server
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))

# Shopper sessions
SESSION_IDLE_MINUTES = int(os.getenv("SESSION_IDLE_MINUTES", 120))
MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", 10000))
