from typing import Dict, Any, Optional
import requests

from .config import RPC_TIMEOUT_S
from .registry import active_network


class RpcError(RuntimeError):
    pass


class RpcTimeout(RpcError):
    pass


def rpc(method: str, params: list, url: Optional[str] = None, timeout: Optional[float] = None) -> Any:
    """
    JSON-RPC call. Returns the "result" member or raises RpcError.
    """
    try:
        r = requests.post(
            url or active_network()["rpc_url"],
            json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
            timeout=timeout or RPC_TIMEOUT_S,
        )
        r.raise_for_status()
        j = r.json()
    except requests.Timeout as e:
        raise RpcTimeout(f"network timeout calling {method}: {e}") from e
    except requests.RequestException as e:
        raise RpcError(f"network error calling {method}: {e}") from e
    if "error" in j:
        err = j["error"] or {}
        raise RpcError(err.get("message", f"{method} error"))
    return j.get("result")


def rpc_call_generic(
    to_addr: str,
    data_hex: str,
    value_wei: int = 0,
    url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> str:
    """
    eth_call with {to, data, value}. Returns the raw hex result.
    """
    call_obj = {"to": to_addr, "data": data_hex, "value": hex(int(value_wei))}
    return rpc("eth_call", [call_obj, "latest"], url=url, timeout=timeout)


def get_balance_wei(address: str, url: Optional[str] = None) -> int:
    return int(rpc("eth_getBalance", [address, "latest"], url=url), 16)


def get_nonce(address: str, url: Optional[str] = None) -> int:
    return int(rpc("eth_getTransactionCount", [address, "pending"], url=url), 16)


def get_gas_price(url: Optional[str] = None) -> int:
    return int(rpc("eth_gasPrice", [], url=url), 16)


def send_raw_tx(raw_hex: str, url: Optional[str] = None) -> str:
    return rpc("eth_sendRawTransaction", [raw_hex], url=url)


def get_receipt(tx_hash: str, url: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Receipt dict with int status, or None while the tx is pending.
    """
    rc = rpc("eth_getTransactionReceipt", [tx_hash], url=url)
    if not rc:
        return None
    out = dict(rc)
    if rc.get("status") is not None:
        out["status"] = int(rc["status"], 16)
    if rc.get("blockNumber"):
        out["blockNumber"] = int(rc["blockNumber"], 16)
    if rc.get("gasUsed"):
        out["gasUsed"] = int(rc["gasUsed"], 16)
    return out
