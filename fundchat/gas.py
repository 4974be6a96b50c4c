from decimal import Decimal
from typing import Optional

from .config import SEND_GAS_MULTIPLIER, DEPLOY_GAS_MULTIPLIER
from .rpc import get_gas_price

FALLBACK_GAS_PRICE_WEI = 1_000_000_000


def bumped(gas_price: int, multiplier: float) -> int:
    return int(Decimal(int(gas_price)) * Decimal(str(multiplier)))


def priority_gas_price(kind: str, url: Optional[str] = None) -> tuple[int, str]:
    """
    Decide the gas price for a submission over the current network estimate.
    Policy:
      - transfers: SEND_GAS_MULTIPLIER (default 1.2x)
      - deployments: DEPLOY_GAS_MULTIPLIER (default 1.5x)
      - estimate unavailable: fixed 1 gwei base
    """
    multiplier = DEPLOY_GAS_MULTIPLIER if kind == "deploy" else SEND_GAS_MULTIPLIER
    try:
        base = get_gas_price(url=url)
        reason = f"network {base / 1e9:.4f} gwei x {multiplier}"
    except Exception as e:
        base = FALLBACK_GAS_PRICE_WEI
        reason = f"gas price unavailable ({e}) -> 1 gwei x {multiplier}"
    return bumped(base, multiplier), reason
