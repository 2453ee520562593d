"""
Runtime configuration.

Values come from the environment (optionally a .env file found by
python-dotenv) and are read once at import time.
"""

from dotenv import load_dotenv, find_dotenv
load_dotenv(find_dotenv(), override=False)

import os

# Reasoning model
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GENAI_API_KEY") or os.getenv("GEMINI_TOKEN")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

# Session / credential used by the terminal client
PAYASSIST_TOKEN = os.getenv("PAYASSIST_TOKEN", "mock_jwt_token_001")
CURRENCY = os.getenv("PAYASSIST_CURRENCY", "AUD")
MAX_TOOL_ITERATIONS = int(os.getenv("PAYASSIST_MAX_ITERATIONS", "10"))

# Session storage
SESSION_TIMEOUT_MINUTES = int(os.getenv("SESSION_TIMEOUT_MINUTES", "30"))
SESSION_BACKEND = os.getenv("SESSION_BACKEND", "memory").lower()
SESSION_REDIS_URL = os.getenv("SESSION_REDIS_URL") or os.getenv("REDIS_URL")
SESSION_REDIS_PREFIX = os.getenv("SESSION_REDIS_PREFIX", "payassist:session")

# Ledger backend: "memory" (seeded demo data) or "sql" (SQLAlchemy async)
LEDGER_BACKEND = os.getenv("LEDGER_BACKEND", "memory").lower()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./payassist.db")
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "false").lower() in ("1", "true", "yes")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("LOG_DIR", "logs")

# HTTP surface
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
