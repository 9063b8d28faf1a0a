# config.py
"""
Environment-driven settings for the billing backend.

Values are read once from the process environment (and a local .env file).
"""
import os
from decimal import Decimal
from urllib.parse import quote_plus

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Auth
JWT_SECRET = os.getenv("JWT_SECRET", "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# CORS
CORS_ORIGINS = [o for o in os.getenv("CORS_ORIGINS", "").split(",") if o]

# Database configuration from environment
DB_SERVER = os.getenv("DB_SERVER")
DB_PORT = os.getenv("DB_PORT", "1433")
DB_USER = os.getenv("DB_USER")
DB_PASS = os.getenv("DB_PASS")
DB_NAME = os.getenv("DB_NAME")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"


def build_database_url() -> str:
     """DATABASE_URL wins; otherwise an MS SQL (pymssql) URL is built from DB_* parts."""
     url = os.getenv("DATABASE_URL")
     if url:
          return url
     safe_user = quote_plus(DB_USER or "")
     safe_pass = quote_plus(DB_PASS or "")
     return f"mssql+pymssql://{safe_user}:{safe_pass}@{DB_SERVER}:{DB_PORT}/{DB_NAME}"


# Ledger
LEDGER_MAX_RETRIES = int(os.getenv("LEDGER_MAX_RETRIES", "3"))

# PayPal
PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID")
PAYPAL_SECRET = os.getenv("PAYPAL_SECRET")
PAYPAL_BASE_URL = os.getenv("PAYPAL_BASE_URL", "https://api-m.sandbox.paypal.com")
PAYPAL_USD_RATE = Decimal(os.getenv("PAYPAL_USD_RATE", "58"))
PAYPAL_TIMEOUT_SECONDS = float(os.getenv("PAYPAL_TIMEOUT_SECONDS", "15"))
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:10000")

# Logging / server
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 10000))
