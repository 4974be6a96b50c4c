import json
import os
from typing import Dict, Any, List
from eth_abi import encode, decode
from eth_utils import keccak, to_checksum_address

from .config import FUNDRAISER_ARTIFACT
from .rpc import rpc_call_generic


class ArtifactError(RuntimeError):
    pass


def _sel(sig: str) -> bytes:
    return keccak(text=sig)[:4]


# constructor(address beneficiary, uint256 goal, uint256 durationInSeconds)
CONSTRUCTOR_TYPES = ["address", "uint256", "uint256"]


def load_artifact(path: str = FUNDRAISER_ARTIFACT) -> Dict[str, Any]:
    """
    Load a compiled CrowdFund artifact: {"abi": [...], "bytecode": "0x..."}.
    """
    if not os.path.exists(path):
        raise ArtifactError(f"Contract artifact not found at {path}")
    with open(path, "r", encoding="utf-8") as f:
        art = json.load(f)
    bytecode = art.get("bytecode")
    if isinstance(bytecode, dict):
        bytecode = bytecode.get("object")
    if not bytecode or len(bytecode) <= 2:
        raise ArtifactError(f"Contract artifact at {path} has no bytecode")
    if not bytecode.startswith("0x"):
        bytecode = "0x" + bytecode
    return {"abi": art.get("abi", []), "bytecode": bytecode}


class FundraiserFactory:
    """
    Pre-built deploy-data builder for the CrowdFund contract.
    """

    def __init__(self, artifact: Dict[str, Any]):
        self.abi = artifact["abi"]
        self.bytecode = artifact["bytecode"]

    def deploy_data(self, beneficiary: str, goal_wei: int, duration_s: int) -> str:
        args = encode(
            CONSTRUCTOR_TYPES,
            [to_checksum_address(beneficiary), int(goal_wei), int(duration_s)],
        )
        return self.bytecode + args.hex()


def get_contributors(contract: str, url: str | None = None) -> List[str]:
    raw = rpc_call_generic(to_checksum_address(contract), "0x" + _sel("getContributors()").hex(), 0, url=url)
    out = bytes.fromhex((raw or "0x")[2:])
    if not out:
        return []
    return [to_checksum_address(a) for a in decode(["address[]"], out)[0]]


def is_fundraiser_active(contract: str, url: str | None = None) -> bool:
    raw = rpc_call_generic(to_checksum_address(contract), "0x" + _sel("isFundraiserActive()").hex(), 0, url=url)
    out = bytes.fromhex((raw or "0x")[2:])
    if not out:
        raise ValueError("isFundraiserActive() returned no data; is this a fundraiser contract?")
    return bool(decode(["bool"], out)[0])
