import os
from dotenv import load_dotenv

load_dotenv()

# === Environment Config ===

ENVIRONMENT = (os.getenv("ENVIRONMENT") or "development").strip().lower()
IS_PROD = ENVIRONMENT == "production"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# === Wallet Config ===

WALLET_KEY = os.getenv("WALLET_KEY")
ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY")
# Keystore under WALLET_DIR used when WALLET_KEY is unset
WALLET_USER_ID = os.getenv("WALLET_USER_ID", "agent")

# === LLM Config (OpenAI-compatible gateway) ===

OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
LLM_BASE_URL = os.getenv("LLM_BASE_URL", "https://openrouter.ai/api/v1").rstrip("/")
LLM_MODEL = os.getenv("LLM_MODEL", "openai/gpt-4o-mini")
LLM_TIMEOUT_S = float(os.getenv("LLM_TIMEOUT_S", "30"))
LLM_MAX_RETRIES = int(os.getenv("LLM_MAX_RETRIES", "3"))
LLM_HEADERS = {
    "Authorization": f"Bearer {OPENROUTER_API_KEY}" if OPENROUTER_API_KEY else "",
    "Content-Type": "application/json",
    "HTTP-Referer": "https://zeonai.xyz",
    "X-Title": "Zeon Fundraiser Agent",
}

# === Chain Config ===

NETWORK_ID = os.getenv("NETWORK_ID", "base-sepolia")
RPC_URL = os.getenv("RPC_URL")
ENS_RPC_URL = os.getenv("ENS_RPC_URL")
ENS_TIMEOUT_S = float(os.getenv("ENS_TIMEOUT_S", "5"))
REVERSE_LOOKUP_TIMEOUT_S = float(os.getenv("REVERSE_LOOKUP_TIMEOUT_S", "2"))
CONFIRMATION_TIMEOUT_S = float(os.getenv("CONFIRMATION_TIMEOUT_S", "60"))
RPC_TIMEOUT_S = float(os.getenv("RPC_TIMEOUT_S", "20"))

SEND_GAS_MULTIPLIER = float(os.getenv("SEND_GAS_MULTIPLIER", "1.2"))
DEPLOY_GAS_MULTIPLIER = float(os.getenv("DEPLOY_GAS_MULTIPLIER", "1.5"))
DEPLOY_GAS_LIMIT = int(os.getenv("DEPLOY_GAS_LIMIT", "1200000"))
TRANSFER_GAS_LIMIT = 21_000
DEFAULT_DURATION_S = 30 * 24 * 60 * 60

FUNDRAISER_ARTIFACT = os.getenv("FUNDRAISER_ARTIFACT", "contracts/CrowdFund.json")

# === Storage Config ===

DATA_DIR = os.getenv("DATA_DIR", ".data")
WALLET_DIR = os.path.join(DATA_DIR, "wallet")
MEMORY_DIR = os.path.join(DATA_DIR, "memory")

MEMORY_MAX_AGE_S = int(os.getenv("MEMORY_MAX_AGE_S", str(24 * 60 * 60)))
MEMORY_SWEEP_INTERVAL_S = int(os.getenv("MEMORY_SWEEP_INTERVAL_S", str(60 * 60)))
MEMORY_CONTEXT_MESSAGES = int(os.getenv("MEMORY_CONTEXT_MESSAGES", "20"))

# === Balance Config ===

MIN_BALANCE_ETH = os.getenv("MIN_BALANCE_ETH", "0.001")
TARGET_BALANCE_ETH = os.getenv("TARGET_BALANCE_ETH", "0.005")
BALANCE_CHECK_INTERVAL_S = int(os.getenv("BALANCE_CHECK_INTERVAL_S", "60"))

# === HTTP Config ===

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "https://zeonai.xyz").rstrip("/")
API_URL = os.getenv("API_URL", "http://localhost:10000").rstrip("/")
PORT = int(os.getenv("PORT", "10000"))

CORS_ORIGINS = [
    o.strip()
    for o in (
        os.getenv("CORS_ORIGINS")
        or "https://www.zeonai.xyz,https://zeonai.xyz,"
        "http://localhost:3000,http://localhost:5173,http://localhost:5174,"
        "http://localhost:8501,http://127.0.0.1:3000,http://127.0.0.1:5173,"
        "http://127.0.0.1:5174,http://127.0.0.1:8501"
    ).split(",")
    if o.strip()
]
CORS_ORIGIN_REGEX = os.getenv(
    "CORS_ORIGIN_REGEX",
    r"https://([a-z0-9-]+\.)*(vercel\.app|netlify\.app|zeonai\.xyz)",
)

# === Messaging Bridge Config ===

AGENT_SEED = os.getenv("AGENT_SEED")
AGENT_PORT = int(os.getenv("AGENT_PORT", "8001"))
AGENTVERSE_API_KEY = os.getenv("AGENTVERSE_API_KEY")
AGENTVERSE_URL = os.getenv("AGENTVERSE_URL", "https://agentverse.ai").rstrip("/")
STORAGE_URL = f"{AGENTVERSE_URL}/v1/storage"

# === General Config ===

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": f"fundchat/1.0 ({'prod' if IS_PROD else 'dev'})",
}

# A tuple means any one of the names will do
SERVER_REQUIRED_ENV = [("WALLET_KEY", "ENCRYPTION_KEY"), "OPENROUTER_API_KEY"]
BRIDGE_REQUIRED_ENV = [("WALLET_KEY", "ENCRYPTION_KEY"), "OPENROUTER_API_KEY", "AGENT_SEED"]


def validate_environment(names: list) -> dict[str, str]:
    """
    Fail fast when required variables are missing. Entries may be a name or a
    tuple of alternatives. Returns {name: value} for every name that is set.
    """
    missing = []
    found = {}
    for entry in names:
        options = entry if isinstance(entry, tuple) else (entry,)
        present = [n for n in options if os.getenv(n)]
        if not present:
            missing.append(" or ".join(options))
        for n in present:
            found[n] = os.environ[n]
    if missing:
        raise RuntimeError(
            f"Missing environment variables: {', '.join(missing)}. "
            "Add them to your environment or .env"
        )
    return found
