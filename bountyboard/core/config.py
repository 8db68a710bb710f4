"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    SUPABASE_URL               — PostgREST endpoint of the durable row store
    SUPABASE_SERVICE_ROLE_KEY  — Row store key. Unset → memory-only mode
    INTERNAL_KEY               — Moderator key (x-internal-key header)
    PAYMENT_EXECUTOR_URL       — Payment service. Unset → approvals queue as payment_pending
    PAYMENT_EXECUTOR_TOKEN     — Bearer token for the payment service
    IDENTITY_SERVICE_URL       — Reputation / signature service. Unset → reputation disabled
    OPENAI_API_KEY             — Advisory grader key. Unset → manual_review
    PUBLIC_BASE_URL            — Used to build claim / detail links in notifications

Memory-only Mode:
    Without a row store key every collection lives in process memory only.
    The claim protocol then falls back to an in-process check-then-set which
    is logged as unsafe on every use.

Rate Limits:
    RATE_LIMIT_WINDOW_SECONDS defines one fixed window. Each action kind has
    its own ceiling per window (claim / submit / create).
"""
import os
from dotenv import load_dotenv

load_dotenv()

# Durable row store
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

# Moderator authentication
INTERNAL_KEY = os.getenv("INTERNAL_KEY")

# External collaborators
PAYMENT_EXECUTOR_URL = os.getenv("PAYMENT_EXECUTOR_URL")
PAYMENT_EXECUTOR_TOKEN = os.getenv("PAYMENT_EXECUTOR_TOKEN", "")
IDENTITY_SERVICE_URL = os.getenv("IDENTITY_SERVICE_URL")
OUTBOUND_TIMEOUT_SECONDS = float(os.getenv("OUTBOUND_TIMEOUT_SECONDS", 20.0))

# Advisory grader (OpenAI-compatible endpoint)
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

# Public links
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:3002").rstrip("/")
TREASURY_ADDRESS = os.getenv("TREASURY_ADDRESS", "0xccd7200024a8b5708d381168ec2db0dc587af83f").lower()

# Rate limiting
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", 60))
RATE_LIMIT_MAX_CLAIMS = int(os.getenv("RATE_LIMIT_MAX_CLAIMS", 3))
RATE_LIMIT_MAX_SUBMISSIONS = int(os.getenv("RATE_LIMIT_MAX_SUBMISSIONS", 5))
RATE_LIMIT_MAX_CREATES = int(os.getenv("RATE_LIMIT_MAX_CREATES", 2))
RATE_LIMIT_SWEEP_SECONDS = int(os.getenv("RATE_LIMIT_SWEEP_SECONDS", 60))

# Anti-hoarding
MAX_ACTIVE_CLAIMS = int(os.getenv("MAX_ACTIVE_CLAIMS", 3))

# Logging
LOG_DIR = os.getenv("LOG_DIR", "logs")

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3002))
