import os
import json
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

def get_env_var(name: str) -> str:
    """Get environment variable or raise a clear error if missing."""
    value = os.getenv(name)
    if not value:
        raise RuntimeError(
            f"❌ Missing required environment variable: {name}\n"
            f"👉 Did you copy .env.example to .env and fill in your keys?"
        )
    return value


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"❌ Environment variable {name} must be a number, got {raw!r}")


def _get_address_book(name: str) -> dict:
    raw = os.getenv(name)
    if not raw:
        return {}
    try:
        book = json.loads(raw)
    except json.JSONDecodeError:
        raise RuntimeError(f"❌ Environment variable {name} must be a JSON object of name -> address")
    if not isinstance(book, dict):
        raise RuntimeError(f"❌ Environment variable {name} must be a JSON object of name -> address")
    return {str(k).strip().lower(): str(v).strip() for k, v in book.items()}


# Generative parser (optional: regex parser is used when no key is set)
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", "")
GEMINI_MODEL_NAME = os.getenv("GEMINI_MODEL_NAME", "gemini-1.5-flash")

# Chain
ARC_RPC_URL = os.getenv("ARC_RPC_URL", "https://rpc.testnet.arc.network")
ARC_CHAIN_ID = int(os.getenv("ARC_CHAIN_ID", "54286"))
BLOCK_EXPLORER_URL = os.getenv("BLOCK_EXPLORER_URL", "https://testnet.arcscan.app")
SIGNER_PRIVATE_KEY = os.getenv("SIGNER_PRIVATE_KEY", "")
GATEWAY_BACKEND = os.getenv("GATEWAY_BACKEND", "web3").strip().lower()
ADDRESS_BOOK = _get_address_book("ADDRESS_BOOK")

# Parsing thresholds
INTENT_CONFIDENCE_THRESHOLD = _get_float("INTENT_CONFIDENCE_THRESHOLD", 0.7)
DETERMINISTIC_CONFIDENCE = _get_float("DETERMINISTIC_CONFIDENCE", 0.9)

# Timeouts (seconds)
GATEWAY_TIMEOUT_S = _get_float("GATEWAY_TIMEOUT_S", 10.0)
POLL_INTERVAL_S = _get_float("POLL_INTERVAL_S", 2.0)
POLL_TIMEOUT_S = _get_float("POLL_TIMEOUT_S", 60.0)
EXECUTOR_TIMEOUT_S = _get_float("EXECUTOR_TIMEOUT_S", 30.0)

# Estimates and yield defaults
FALLBACK_GAS_ESTIMATE = os.getenv("FALLBACK_GAS_ESTIMATE", "0.015")
DEFAULT_APY = os.getenv("DEFAULT_APY", "5.0")
# Stand-in holding period used only when no deposit date was recorded
DEFAULT_HOLDING_DAYS = int(os.getenv("DEFAULT_HOLDING_DAYS", "30"))

# Optional vars (with defaults)
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
PORT = int(os.getenv("PORT", "8000"))
