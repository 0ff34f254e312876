import os
from dotenv import load_dotenv

# Loads the .env file so os.getenv can see local overrides
load_dotenv()

# --- Storage ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./cityfix.db")

# --- Frontend / CORS ---
CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173").rstrip("/")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,https://localhost:3000",
    ).split(",")
    if origin.strip()
]

# --- Payments ---
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "usd")
PREMIUM_PRICE = 1000  # smallest currency unit
BOOST_PRICE = 100

# --- Free tier ---
FREE_ISSUE_LIMIT = int(os.getenv("FREE_ISSUE_LIMIT", "3"))

# --- Tokens ---
ACCESS_TOKEN_SECRET = os.getenv("ACCESS_TOKEN_SECRET", "super_secret_jwt_key")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "")

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
