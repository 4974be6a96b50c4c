import logging
import threading
import time
from typing import Dict, Any, Optional

from .config import (
    WALLET_KEY,
    ENCRYPTION_KEY,
    WALLET_USER_ID,
    WALLET_DIR,
    FUNDRAISER_ARTIFACT,
    DEPLOY_GAS_LIMIT,
    TRANSFER_GAS_LIMIT,
    CONFIRMATION_TIMEOUT_S,
)
from .contracts import FundraiserFactory, ArtifactError, load_artifact
from .gas import priority_gas_price
from .registry import active_network
from .rpc import get_balance_wei, get_receipt
from .wallet import WalletHandle, load_or_create_wallet

logger = logging.getLogger(__name__)


class ConfirmationTimeout(RuntimeError):
    def __init__(self, tx_hash: str, waited_s: float):
        super().__init__(f"transaction {tx_hash} not confirmed after {waited_s:.0f}s")
        self.tx_hash = tx_hash


class ChainContext:
    """
    Process-wide provider/wallet/contract-factory triple. Created once and
    reused; read-mostly after init(). Only WalletHandle.lock guards writes.
    """

    def __init__(
        self,
        private_key: Optional[str] = None,
        network: Optional[Dict[str, Any]] = None,
        artifact_path: str = FUNDRAISER_ARTIFACT,
        wallet_user_id: str = WALLET_USER_ID,
        wallet_dir: str = WALLET_DIR,
    ):
        self._private_key = private_key or WALLET_KEY
        self.network = network or active_network()
        self.artifact_path = artifact_path
        self.wallet_user_id = wallet_user_id
        self.wallet_dir = wallet_dir
        self.wallet: Optional[WalletHandle] = None
        self.factory: Optional[FundraiserFactory] = None
        self._artifact_error: Optional[str] = None
        self._init_lock = threading.Lock()

    @property
    def rpc_url(self) -> str:
        return self.network["rpc_url"]

    @property
    def ready(self) -> bool:
        return self.wallet is not None

    def init(self) -> "ChainContext":
        if self.wallet is not None:
            return self
        with self._init_lock:
            if self.wallet is not None:
                return self
            logger.info(f"Initializing chain components on {self.network['name']} ({self.rpc_url})")
            try:
                self.factory = FundraiserFactory(load_artifact(self.artifact_path))
            except ArtifactError as e:
                self._artifact_error = str(e)
                logger.warning(f"Fundraiser deployments disabled: {e}")
            self.wallet = self._open_wallet()
            logger.info(f"Agent wallet ready: {self.wallet.address}")
        return self

    def _open_wallet(self) -> WalletHandle:
        if self._private_key:
            return WalletHandle(self._private_key, self.network["chain_id"], self.rpc_url)
        if not ENCRYPTION_KEY:
            raise RuntimeError("WALLET_KEY or ENCRYPTION_KEY not set. Add one to your environment or .env")
        logger.info(f"WALLET_KEY not set, using persisted wallet for {self.wallet_user_id}")
        return load_or_create_wallet(
            self.wallet_user_id, self.network["chain_id"], self.rpc_url, ENCRYPTION_KEY, self.wallet_dir
        )

    def shutdown(self) -> None:
        self.wallet = None
        self.factory = None

    def get_balance(self, address: str) -> int:
        return get_balance_wei(address, url=self.rpc_url)

    def send_value(self, to_addr: str, value_wei: int) -> Dict[str, Any]:
        self.init()
        gas_price, reason = priority_gas_price("send", url=self.rpc_url)
        logger.info(f"[send] {value_wei} wei -> {to_addr} @ {reason}")
        tx_hash = self.wallet.send_transaction(
            {"to": to_addr, "value": value_wei, "gas": TRANSFER_GAS_LIMIT, "gasPrice": gas_price}
        )
        return {"hash": tx_hash, "gas_price": gas_price, "from": self.wallet.address}

    def deploy_fundraiser(self, beneficiary: str, goal_wei: int, duration_s: int) -> Dict[str, Any]:
        self.init()
        if self.factory is None:
            raise ArtifactError(self._artifact_error or "Fundraiser contract artifact unavailable")
        gas_price, reason = priority_gas_price("deploy", url=self.rpc_url)
        logger.info(f"[deploy] beneficiary={beneficiary} goal={goal_wei} wei @ {reason}")
        data = self.factory.deploy_data(beneficiary, goal_wei, duration_s)
        tx_hash = self.wallet.send_transaction(
            {"to": None, "value": 0, "gas": DEPLOY_GAS_LIMIT, "gasPrice": gas_price, "data": data}
        )
        return {"hash": tx_hash, "gas_price": gas_price, "from": self.wallet.address}

    def wait_for_receipt(
        self, tx_hash: str, timeout: float = CONFIRMATION_TIMEOUT_S, poll_s: float = 2.0
    ) -> Dict[str, Any]:
        """
        Poll for a receipt until timeout, then check once more before raising
        ConfirmationTimeout.
        """
        start = time.monotonic()
        while time.monotonic() - start < timeout:
            rc = get_receipt(tx_hash, url=self.rpc_url)
            if rc is not None:
                return rc
            time.sleep(poll_s)
        rc = get_receipt(tx_hash, url=self.rpc_url)
        if rc is not None:
            return rc
        raise ConfirmationTimeout(tx_hash, time.monotonic() - start)
