import json
import logging
import os
import re
import secrets
import threading
from typing import Dict, Any, Optional
from eth_account import Account
from eth_utils import to_checksum_address
from hexbytes import HexBytes

from .config import WALLET_DIR, ENCRYPTION_KEY
from .rpc import get_balance_wei, get_nonce, send_raw_tx

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"[^A-Za-z0-9_.-]")


def _raw_bytes(signed) -> bytes:
    if hasattr(signed, "raw_transaction"):
        return bytes(HexBytes(getattr(signed, "raw_transaction")))
    if hasattr(signed, "rawTransaction"):
        return bytes(HexBytes(getattr(signed, "rawTransaction")))
    if isinstance(signed, (bytes, bytearray, HexBytes)):
        return bytes(HexBytes(signed))
    raise TypeError(f"Unsupported signed tx type: {type(signed)}")


class WalletHandle:
    """
    A signing key bound to one chain. Submissions are serialized through
    `lock` so nonce selection and broadcast happen atomically per wallet.
    """

    def __init__(self, private_key: str, chain_id: int, rpc_url: Optional[str] = None):
        self._account = Account.from_key(private_key)
        self.chain_id = int(chain_id)
        self.rpc_url = rpc_url
        self.lock = threading.Lock()

    @property
    def address(self) -> str:
        return self._account.address

    def get_balance(self) -> int:
        return get_balance_wei(self.address, url=self.rpc_url)

    def sign_transaction(self, tx: Dict[str, Any], nonce: int) -> bytes:
        norm = {
            "chainId": self.chain_id,
            "value": int(tx.get("value", 0)),
            "gas": int(tx["gas"]),
            "gasPrice": int(tx["gasPrice"]),
            "nonce": int(nonce),
            "data": tx.get("data") or "0x",
        }
        if tx.get("to"):
            norm["to"] = to_checksum_address(tx["to"])
        signed = self._account.sign_transaction(norm)
        return _raw_bytes(signed)

    def send_transaction(self, tx: Dict[str, Any]) -> str:
        with self.lock:
            nonce = get_nonce(self.address, url=self.rpc_url)
            raw = self.sign_transaction(tx, nonce)
            tx_hash = send_raw_tx("0x" + raw.hex(), url=self.rpc_url)
        logger.info(f"[wallet] sent tx {tx_hash} from {self.address} nonce={nonce}")
        return tx_hash

    def export_wallet(self, passphrase: str) -> Dict[str, Any]:
        return Account.encrypt(self._account.key, passphrase)

    @classmethod
    def import_wallet(
        cls, keystore: Dict[str, Any], passphrase: str, chain_id: int, rpc_url: Optional[str] = None
    ) -> "WalletHandle":
        key = Account.decrypt(keystore, passphrase)
        return cls("0x" + bytes(key).hex(), chain_id, rpc_url)


def wallet_path(user_id: str, wallet_dir: str = WALLET_DIR) -> str:
    return os.path.join(wallet_dir, f"{_SAFE_ID.sub('_', user_id)}.json")


def load_or_create_wallet(
    user_id: str,
    chain_id: int,
    rpc_url: Optional[str] = None,
    passphrase: Optional[str] = None,
    wallet_dir: str = WALLET_DIR,
) -> WalletHandle:
    """
    Import the persisted wallet for user_id, or create and persist a new one.
    An existing file is never overwritten.
    """
    passphrase = passphrase or ENCRYPTION_KEY
    if not passphrase:
        raise RuntimeError("ENCRYPTION_KEY not set. Add it to your environment or .env")
    path = wallet_path(user_id, wallet_dir)
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            keystore = json.load(f)
        return WalletHandle.import_wallet(keystore, passphrase, chain_id, rpc_url)

    os.makedirs(wallet_dir, exist_ok=True)
    handle = WalletHandle("0x" + secrets.token_hex(32), chain_id, rpc_url)
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except FileExistsError:
        # Lost a creation race: the first writer wins
        return load_or_create_wallet(user_id, chain_id, rpc_url, passphrase, wallet_dir)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(handle.export_wallet(passphrase), f)
    logger.info(f"[wallet] created wallet {handle.address} for {user_id}")
    return handle
