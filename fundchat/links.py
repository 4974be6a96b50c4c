"""
Shareable fundraiser links.

Values are percent-encoded exactly once on the way out (urlencode) and decoded
exactly once on the way in (parse_qs). Nothing here re-encodes a value that
came from a URL.
"""
import re
from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional, Mapping
from urllib.parse import urlencode, urlsplit, parse_qs, unquote

from .config import PUBLIC_BASE_URL
from .registry import active_network
from .utils import is_valid_address

DEFAULT_GOAL = "1"
DEFAULT_NAME = "Fundraiser"
DEFAULT_CURRENT = "0"

_DOUBLE_ENCODED = re.compile(r"%25([0-9A-Fa-f]{2})")


@dataclass
class FundraiserParams:
    wallet_address: str
    goal_amount: str = DEFAULT_GOAL
    fundraiser_name: str = DEFAULT_NAME
    description: Optional[str] = None
    current_amount: str = DEFAULT_CURRENT

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        return {
            "walletAddress": d["wallet_address"],
            "goalAmount": d["goal_amount"],
            "fundraiserName": d["fundraiser_name"],
            "description": d["description"],
            "currentAmount": d["current_amount"],
        }


def compose_fundraiser_url(params: FundraiserParams, base_url: str = PUBLIC_BASE_URL) -> str:
    if not is_valid_address(params.wallet_address):
        raise ValueError("Invalid wallet address format. Expected 0x followed by 40 hex characters.")
    query = {"goal": params.goal_amount, "name": params.fundraiser_name}
    if params.description:
        query["description"] = params.description
    if params.current_amount and params.current_amount != DEFAULT_CURRENT:
        query["current"] = params.current_amount
    return f"{base_url.rstrip('/')}/fundraiser/{params.wallet_address}?{urlencode(query)}"


def params_from_query(wallet_address: str, query: Mapping[str, Any]) -> FundraiserParams:
    """
    Build params from an already-decoded query mapping (one value per key).
    """
    if not is_valid_address(wallet_address):
        raise ValueError(f"Invalid fundraiser address '{wallet_address}'")

    def first(key: str) -> Optional[str]:
        v = query.get(key)
        if isinstance(v, (list, tuple)):
            v = v[0] if v else None
        return v if v else None

    return FundraiserParams(
        wallet_address=wallet_address,
        goal_amount=first("goal") or DEFAULT_GOAL,
        fundraiser_name=first("name") or DEFAULT_NAME,
        description=first("description"),
        current_amount=first("current") or DEFAULT_CURRENT,
    )


def decompose_fundraiser_url(url: str) -> FundraiserParams:
    parts = urlsplit(url)
    segments = [s for s in parts.path.split("/") if s]
    if len(segments) < 2 or segments[-2] != "fundraiser":
        raise ValueError(f"Not a fundraiser URL: {url}")
    return params_from_query(unquote(segments[-1]), parse_qs(parts.query))


def generate_qr_code_url(
    wallet_address: str, amount: str, fundraiser_name: str, base_url: str = PUBLIC_BASE_URL
) -> str:
    net = active_network()
    query = {
        "walletAddress": wallet_address,
        "amount": str(amount),
        "fundraiserName": fundraiser_name,
        "network": net["id"],
        "chainId": str(net["chain_id"]),
    }
    return f"{base_url.rstrip('/')}/api/qr-code?{urlencode(query)}"


def fix_double_encoded_url(url: str) -> str:
    """
    Repair links produced by encoding an already-encoded value (%2520 -> %20).
    Only for links minted before encoding was fixed; new links never need it.
    """
    if not url:
        return ""
    prev = None
    while prev != url:
        prev, url = url, _DOUBLE_ENCODED.sub(r"%\1", url)
    return url


def params_from_link(link: str) -> FundraiserParams:
    """
    Parse a pasted share link with one decode pass. The double-encoding repair
    runs only when that pass rejects the link.
    """
    link = (link or "").strip()
    try:
        return decompose_fundraiser_url(link)
    except ValueError:
        if "%25" not in link:
            raise
    return decompose_fundraiser_url(fix_double_encoded_url(link))
