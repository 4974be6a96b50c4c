import logging
import re
import threading
import time
from decimal import Decimal
from typing import Callable, Dict, Any, Optional, Tuple

from .config import MIN_BALANCE_ETH, TARGET_BALANCE_ETH
from .utils import eth_from_wei

logger = logging.getLogger(__name__)

CACHE_TTL_S = 30.0
ALERT_THROTTLE_S = 300.0

# keyword -> requires funds. A free-text heuristic: extend it, do not rely on it.
TRANSACTION_KEYWORDS: Dict[str, bool] = {
    "send": True,
    "transfer": True,
    "pay": True,
    "deploy": True,
    "create fundraiser": True,
    "new fundraiser": True,
    "start a fundraiser": True,
    "launch": True,
    "tip": True,
    "donate": False,
    "contribute": False,
    "balance": False,
    "status": False,
    "contributors": False,
    "qr": False,
}

_KEYWORD_RES = {
    kw: re.compile(r"\b" + re.escape(kw) + r"\b", re.I) for kw in TRANSACTION_KEYWORDS
}


def is_transaction_message(text: str, policy: Optional[Dict[str, bool]] = None) -> bool:
    """
    True when text mentions any keyword the policy marks as requiring funds.
    """
    if not text:
        return False
    policy = policy if policy is not None else TRANSACTION_KEYWORDS
    for kw, requires_funds in policy.items():
        if not requires_funds:
            continue
        rx = _KEYWORD_RES.get(kw) or re.compile(r"\b" + re.escape(kw) + r"\b", re.I)
        if rx.search(text):
            return True
    return False


class BalanceManager:
    """
    Cached view of the agent wallet balance with a low-balance gate.

    Reports only: it never requests faucet funds.
    """

    def __init__(
        self,
        get_balance_wei: Callable[[], int],
        get_address: Callable[[], str],
        minimum_eth: str = MIN_BALANCE_ETH,
        target_eth: str = TARGET_BALANCE_ETH,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._get_balance_wei = get_balance_wei
        self._get_address = get_address
        self.minimum = Decimal(minimum_eth)
        self.target = Decimal(target_eth)
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: Optional[Tuple[str, float]] = None
        self.is_low = True
        self.last_checked: Optional[float] = None
        self.last_alert: Optional[float] = None

    def current_balance(self, use_cache: bool = True) -> str:
        now = self._clock()
        with self._lock:
            if use_cache and self._cache and now - self._cache[1] < CACHE_TTL_S:
                return self._cache[0]
        try:
            balance = eth_from_wei(self._get_balance_wei())
        except Exception as e:
            logger.error(f"[balance] error getting balance: {e}")
            with self._lock:
                return self._cache[0] if self._cache else "0"
        with self._lock:
            self._cache = (balance, now)
            self.last_checked = now
            self.is_low = Decimal(balance) < self.minimum
        logger.debug(f"[balance] {balance} ETH (low={self.is_low})")
        return balance

    def ensure_sufficient_balance(self) -> Tuple[bool, Optional[str]]:
        balance = self.current_balance(use_cache=False)
        if Decimal(balance) >= self.minimum:
            return True, None
        self.last_alert = self._clock()
        return False, (
            f"I need more ETH for transaction fees. Current balance: {balance} ETH "
            f"(need: {self.minimum} ETH). Please send ETH to my wallet address: {self._get_address()}"
        )

    def monitor_tick(self) -> None:
        balance = self.current_balance(use_cache=False)
        if Decimal(balance) >= self.minimum:
            return
        now = self._clock()
        if self.last_alert is None or now - self.last_alert > ALERT_THROTTLE_S:
            logger.warning(
                f"⚠️ Low balance detected: {balance} ETH (minimum: {self.minimum} ETH, "
                f"target: {self.target} ETH)"
            )
            self.last_alert = now

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "currentBalance": self._cache[0] if self._cache else "0",
                "isLowBalance": self.is_low,
                "minimumBalance": str(self.minimum),
                "targetBalance": str(self.target),
            }
