from typing import Dict, Any
import logging
import requests

from .config import DEFAULT_HEADERS

logger = logging.getLogger(__name__)

CG_BASE = "https://api.coingecko.com/api/v3"
COINBASE_BASE = "https://api.coinbase.com/v2"
FALLBACK_ETH_USD = 2000.0


def fetch_eth_usd() -> Dict[str, Any]:
    """
    Returns {"eth_usd": float, "source": str} without needing an API key.
    Tries CoinGecko -> Coinbase spot -> fixed fallback.
    """
    try:
        r = requests.get(
            f"{CG_BASE}/simple/price",
            params={"ids": "ethereum", "vs_currencies": "usd", "precision": "full"},
            headers=DEFAULT_HEADERS,
            timeout=10,
        )
        r.raise_for_status()
        px = r.json().get("ethereum", {}).get("usd")
        if px is not None:
            return {"eth_usd": float(px), "source": "coingecko"}
    except Exception as e:
        logger.warning(f"CoinGecko ETH price unavailable: {e}")
    try:
        r = requests.get(
            f"{COINBASE_BASE}/prices/ETH-USD/spot",
            headers=DEFAULT_HEADERS,
            timeout=10,
        )
        r.raise_for_status()
        px = r.json().get("data", {}).get("amount")
        if px is not None:
            return {"eth_usd": float(px), "source": "coinbase"}
    except Exception as e:
        logger.warning(f"Coinbase ETH price unavailable: {e}")
    return {"eth_usd": FALLBACK_ETH_USD, "source": "fallback"}
