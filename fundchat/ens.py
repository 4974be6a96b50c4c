import time
from typing import Optional
from eth_abi import encode, decode
from eth_utils import keccak, to_checksum_address

from .config import ENS_RPC_URL, ENS_TIMEOUT_S, REVERSE_LOOKUP_TIMEOUT_S
from .registry import ens_network
from .rpc import rpc_call_generic, RpcError, RpcTimeout

ZERO_ADDRESS = "0x" + "00" * 20


class NameResolutionError(RuntimeError):
    pass


class NameResolutionTimeout(NameResolutionError):
    pass


def _sel(sig: str) -> bytes:
    return keccak(text=sig)[:4]


def namehash(name: str) -> bytes:
    node = b"\x00" * 32
    if not name:
        return node
    for label in reversed(name.lower().split(".")):
        node = keccak(node + keccak(text=label))
    return node


def looks_like_name(value: str) -> bool:
    return "." in (value or "") and not value.startswith("0x")


class _Deadline:
    def __init__(self, seconds: float):
        self.expires = time.monotonic() + seconds

    def remaining(self) -> float:
        left = self.expires - time.monotonic()
        if left <= 0:
            raise NameResolutionTimeout("ENS resolution timeout")
        return left


def _call(to_addr: str, data: bytes, deadline: _Deadline) -> bytes:
    net = ens_network()
    try:
        raw = rpc_call_generic(
            to_addr,
            "0x" + data.hex(),
            0,
            url=ENS_RPC_URL or net["rpc_url"],
            timeout=deadline.remaining(),
        )
    except RpcTimeout as e:
        raise NameResolutionTimeout("ENS resolution timeout") from e
    except RpcError as e:
        raise NameResolutionError(str(e)) from e
    return bytes.fromhex((raw or "0x")[2:])


def _resolver_for(node: bytes, deadline: _Deadline) -> Optional[str]:
    registry = ens_network()["ens_registry"]
    out = _call(registry, _sel("resolver(bytes32)") + encode(["bytes32"], [node]), deadline)
    if len(out) < 32:
        return None
    resolver = decode(["address"], out)[0]
    if int(resolver, 16) == 0:
        return None
    return to_checksum_address(resolver)


def resolve_name(name: str, timeout: float = ENS_TIMEOUT_S) -> Optional[str]:
    """
    Forward-resolve an ENS-style name to a checksummed address.
    Returns None when the name has no resolver or no address record.
    Raises NameResolutionTimeout once the overall budget is spent.
    """
    deadline = _Deadline(timeout)
    node = namehash(name)
    resolver = _resolver_for(node, deadline)
    if not resolver:
        return None
    out = _call(resolver, _sel("addr(bytes32)") + encode(["bytes32"], [node]), deadline)
    if len(out) < 32:
        return None
    addr = decode(["address"], out)[0]
    if int(addr, 16) == 0:
        return None
    return to_checksum_address(addr)


def lookup_address(address: str, timeout: float = REVERSE_LOOKUP_TIMEOUT_S) -> Optional[str]:
    """
    Reverse-resolve an address to its primary name. Any failure yields None.
    """
    try:
        deadline = _Deadline(timeout)
        node = namehash(f"{address.lower()[2:]}.addr.reverse")
        resolver = _resolver_for(node, deadline)
        if not resolver:
            return None
        out = _call(resolver, _sel("name(bytes32)") + encode(["bytes32"], [node]), deadline)
        if not out:
            return None
        name = decode(["string"], out)[0]
        return name or None
    except Exception:
        return None
