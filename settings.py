"""
Configuration settings for the storefront API.

Values come from the environment where a deployment needs to vary them;
everything else is a plain constant.
"""

import os

# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# Auth (bearer JWT)
TOKEN_SECRET = os.getenv("TOKEN_SECRET", "storefront-dev-secret-change-me-before-deploying")
TOKEN_ALGORITHM = "HS256"
TOKEN_EXPIRATION_HOURS = int(os.getenv("TOKEN_EXPIRATION_HOURS", "5"))

# Payments
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "cad")

# Server
PORT = int(os.getenv("PORT", "8000"))

# Pagination
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

# Cart writes are version-guarded; a concurrent writer forces a re-read
CART_UPDATE_MAX_RETRIES = 3

# Orders
POSTAL_CODE_PATTERN = r"^[A-Za-z]\d[A-Za-z] \d[A-Za-z]\d$"
TOTAL_AMOUNT_TOLERANCE = 0.01

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")  # DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
