import re
from typing import Optional
from datetime import datetime, timezone
from decimal import Decimal, ROUND_DOWN, InvalidOperation

from .registry import active_network

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
TX_HASH_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")

WEI_PER_ETH = Decimal(10) ** 18


def is_valid_address(address) -> bool:
    return isinstance(address, str) and bool(ADDRESS_RE.match(address))


def is_valid_tx_hash(tx_hash) -> bool:
    return isinstance(tx_hash, str) and bool(TX_HASH_RE.match(tx_hash))


def wei_from_eth(amount_str: str) -> int:
    try:
        amt = Decimal(str(amount_str).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid ETH amount '{amount_str}'")
    if not amt.is_finite() or amt < 0:
        raise ValueError(f"Invalid ETH amount '{amount_str}'")
    wei = (amt * WEI_PER_ETH).to_integral_value(rounding=ROUND_DOWN)
    return int(wei)


def eth_from_wei(wei: int) -> str:
    """
    Exact decimal ETH string, trailing zeros trimmed ("0.05", "1", "0").
    """
    value = Decimal(int(wei)) / WEI_PER_ETH
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def short_hex(value: str) -> str:
    return f"{value[:6]}...{value[-4:]}"


def explorer_link(value: str, kind: str = "tx") -> str:
    base = active_network()["explorer"]
    if kind == "tx":
        return f"{base}/tx/{value}"
    if kind == "address":
        return f"{base}/address/{value}"
    if kind == "token":
        return f"{base}/token/{value}"
    return f"{base}/search?q={value}"


def eip681_payment_uri(address: str, value_wei: int, chain_id: Optional[int] = None) -> str:
    target = f"{address}@{chain_id}" if chain_id is not None else address
    return f"ethereum:{target}?value={value_wei}"


# Ordered: the first pattern that matches wins
AMOUNT_PATTERNS = [
    re.compile(r"(\d+(?:\.\d+)?)\s*(?:usdc|usd|dollars?)\s*(?:worth|of|in)\s*(?:eth)?", re.I),
    re.compile(r"(\d+(?:\.\d+)?)\s*eth", re.I),
    re.compile(r"worth\s*(\d+(?:\.\d+)?)\s*(?:usdc|usd|dollars?)", re.I),
    re.compile(r"fundraiser\s*(?:for|worth|of)\s*(\d+(?:\.\d+)?)\s*(?:usdc|usd|dollars?)", re.I),
    re.compile(r"(\d+(?:\.\d+)?)\s*(?:usdc|usd|dollars?)", re.I),
]


def mentions_usd(text: str) -> bool:
    t = text.lower()
    return "usd" in t or "dollar" in t


def parse_amount_from_input(text: str, eth_usd: Optional[float] = None) -> str:
    """
    Pull an ETH amount out of free text. USD-denominated amounts are converted
    at eth_usd (fetched live when not given).
    """
    for pattern in AMOUNT_PATTERNS:
        m = pattern.search(text or "")
        if not m:
            continue
        amount = Decimal(m.group(1))
        if mentions_usd(text):
            if eth_usd is None:
                from .prices import fetch_eth_usd

                eth_usd = fetch_eth_usd()["eth_usd"]
            eth = (amount / Decimal(str(eth_usd))).quantize(Decimal("0.000001"), rounding=ROUND_DOWN)
            return format(eth.normalize(), "f")
        return format(amount.normalize(), "f")
    raise ValueError(
        f'Could not parse amount from: "{text}". Please specify the amount clearly '
        '(e.g., "0.1 ETH" or "100 USDC worth of ETH").'
    )


def now_ts() -> int:
    return int(datetime.now(timezone.utc).timestamp())


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
