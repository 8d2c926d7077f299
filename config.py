import os

from dotenv import load_dotenv

load_dotenv()

SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Uploaded images
MEDIA_ROOT = os.getenv("MEDIA_ROOT", "./media")
MEDIA_URL = os.getenv("MEDIA_URL", "/media")
MAX_IMAGE_BYTES = 5 * 1024 * 1024
MAX_IMAGES_PER_FIELD = 5
ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}

LOW_STOCK_THRESHOLD = 5
DEFAULT_PAGE_LIMIT = int(os.getenv("DEFAULT_PAGE_LIMIT", 10))

# Shipping: one fee per distinct vendor district in the order
SHIPPING_FEE_LOCAL = 100
SHIPPING_FEE_REMOTE = 200
LOCAL_DISTRICT_GROUP = ("Kathmandu", "Bhaktapur", "Lalitpur")

# Payment gateways
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
ESEWA_PAYMENT_URL = os.getenv("ESEWA_PAYMENT_URL", "https://rc-epay.esewa.com.np/api/epay/main/v2/form")
ESEWA_MERCHANT = os.getenv("ESEWA_MERCHANT", "EPAYTEST")
ESEWA_SECRET = os.getenv("ESEWA_SECRET", "8gBm/:&EnhH.1/q")
KHALTI_BASE_URL = os.getenv("KHALTI_BASE_URL", "https://a.khalti.com/api/v2")
KHALTI_SECRET_KEY = os.getenv("KHALTI_SECRET_KEY", "")
PAYMENT_TIMEOUT = float(os.getenv("PAYMENT_TIMEOUT", 15))

# Background jobs
JOBS_ENABLED = os.getenv("JOBS_ENABLED", "true").lower() in ("1", "true", "yes")
TOKEN_CLEANUP_INTERVAL = int(os.getenv("TOKEN_CLEANUP_INTERVAL", 120))
ORDER_CLEANUP_INTERVAL = int(os.getenv("ORDER_CLEANUP_INTERVAL", 300))
UNPAID_ORDER_TTL_MINUTES = int(os.getenv("UNPAID_ORDER_TTL_MINUTES", 15))
