"""
Tools exposed to the LLM.

Each tool is a ToolSpec: a JSON schema for the model, an input dataclass
built explicitly from the call arguments, and a handler returning text.
Handlers never raise: bad input and upstream failures come back as
user-facing strings the model can relay.
"""
import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from eth_utils import to_checksum_address

from .chain import ChainContext, ConfirmationTimeout
from .config import DEFAULT_DURATION_S
from .contracts import get_contributors, is_fundraiser_active
from .ens import looks_like_name, resolve_name, lookup_address, NameResolutionError, NameResolutionTimeout
from .formatting import (
    QRCodeError,
    generate_contract_qr,
    generate_contribution_qr,
    invalid_address_message,
    format_transaction_response,
    format_submitted_unconfirmed,
    format_deploy_response,
    format_deploy_pending,
    format_deploy_error,
    format_qr_failure_note,
    format_send_error,
    format_balance,
    format_status,
    format_contributors,
)
from .links import FundraiserParams, compose_fundraiser_url
from .payload import qr_wire
from .utils import (
    is_valid_address,
    wei_from_eth,
    eth_from_wei,
    mentions_usd,
    parse_amount_from_input,
    explorer_link,
)

logger = logging.getLogger(__name__)

HEX_DATA_RE = re.compile(r"^0x(?:[0-9a-fA-F]{2})*$")
SUGGESTED_SHARE = Decimal("0.05")
SUGGESTED_MIN = Decimal("0.001")
SUGGESTED_MAX = Decimal("0.1")


class ToolInputError(ValueError):
    pass


def _require(args: Dict[str, Any], key: str) -> str:
    v = args.get(key)
    if v is None or (isinstance(v, str) and not v.strip()):
        raise ToolInputError(f"Missing required argument '{key}'")
    return str(v).strip()


def _optional(args: Dict[str, Any], key: str, default: Optional[str] = None) -> Optional[str]:
    v = args.get(key)
    if v is None or (isinstance(v, str) and not v.strip()):
        return default
    return str(v).strip()


# === Inputs ===


@dataclass
class BalanceInput:
    address: Optional[str] = None

    @classmethod
    def from_args(cls, args: Dict[str, Any]) -> "BalanceInput":
        return cls(address=_optional(args, "address"))


@dataclass
class SendFundsInput:
    recipient: str
    amount_in_eth: str

    @classmethod
    def from_args(cls, args: Dict[str, Any]) -> "SendFundsInput":
        return cls(recipient=_require(args, "recipient"), amount_in_eth=_require(args, "amountInEth"))


@dataclass
class DeployInput:
    beneficiary_address: str
    goal_amount: str
    duration_in_seconds: str = str(DEFAULT_DURATION_S)
    fundraiser_name: str = "Fundraiser"
    original_user_input: Optional[str] = None

    @classmethod
    def from_args(cls, args: Dict[str, Any]) -> "DeployInput":
        return cls(
            beneficiary_address=_require(args, "beneficiaryAddress"),
            goal_amount=_require(args, "goalAmount"),
            duration_in_seconds=_optional(args, "durationInSeconds", str(DEFAULT_DURATION_S)),
            fundraiser_name=_optional(args, "fundraiserName", "Fundraiser"),
            original_user_input=_optional(args, "originalUserInput"),
        )


@dataclass
class ContractInput:
    contract_address: str

    @classmethod
    def from_args(cls, args: Dict[str, Any]) -> "ContractInput":
        return cls(contract_address=_require(args, "contractAddress"))


@dataclass
class ContributionQRInput:
    contract_address: str
    amount_in_eth: str
    fundraiser_name: str

    @classmethod
    def from_args(cls, args: Dict[str, Any]) -> "ContributionQRInput":
        return cls(
            contract_address=_require(args, "contractAddress"),
            amount_in_eth=_require(args, "amountInEth"),
            fundraiser_name=_optional(args, "fundraiserName", "Fundraiser"),
        )


@dataclass
class ContractCallQRInput:
    contract_address: str
    function_data: Optional[str] = None
    value_in_eth: Optional[str] = None

    @classmethod
    def from_args(cls, args: Dict[str, Any]) -> "ContractCallQRInput":
        return cls(
            contract_address=_require(args, "contractAddress"),
            function_data=_optional(args, "functionData"),
            value_in_eth=_optional(args, "valueInEth"),
        )


@dataclass
class WalletFundraiserInput:
    fundraiser_name: str
    goal_amount: str
    description: Optional[str] = None

    @classmethod
    def from_args(cls, args: Dict[str, Any]) -> "WalletFundraiserInput":
        return cls(
            fundraiser_name=_optional(args, "fundraiserName", "Fundraiser"),
            goal_amount=_require(args, "goalAmount"),
            description=_optional(args, "description"),
        )


def _invalid_amount(amount: str) -> str:
    return (
        "❌ Invalid Amount\n"
        f"The amount `{amount}` is not a valid ETH amount. Please check and try again."
    )


def _positive_wei(amount: str) -> Optional[int]:
    try:
        wei = wei_from_eth(amount)
    except ValueError:
        return None
    return wei if wei > 0 else None


# === Handlers ===


def check_wallet_balance(inp: BalanceInput, chain: ChainContext) -> str:
    address = inp.address
    if address and not is_valid_address(address):
        return invalid_address_message(address, role="wallet")
    try:
        if not address:
            chain.init()
            address = chain.wallet.address
        wei = chain.get_balance(address)
    except Exception as e:
        logger.error(f"Error checking wallet balance: {e}")
        return (
            "❌ Could Not Check Balance\n"
            "I was unable to check the balance of this wallet.\n"
            f"Error: {e}"
        )
    return format_balance(address, eth_from_wei(wei))


def send_funds(inp: SendFundsInput, chain: ChainContext) -> str:
    recipient, amount = inp.recipient, inp.amount_in_eth
    if mentions_usd(amount):
        try:
            amount = parse_amount_from_input(amount)
        except ValueError as e:
            return f"❌ Invalid Amount\n{e}"

    if looks_like_name(recipient):
        target = None
    elif is_valid_address(recipient):
        target = recipient
    else:
        return (
            "❌ Invalid Recipient\n"
            f"The recipient `{recipient}` is not a valid wallet address or ENS/.base name. "
            "Please check and try again."
        )
    value_wei = _positive_wei(amount)
    if value_wei is None:
        return _invalid_amount(amount)

    if target is None:
        try:
            target = resolve_name(recipient)
        except NameResolutionTimeout:
            return (
                "❌ Name Resolution Timed Out\n"
                f"Resolving `{recipient}` took too long. Please try again or use the 0x address."
            )
        except NameResolutionError as e:
            logger.warning(f"ENS resolution failed for {recipient}: {e}")
            target = None
        if not target:
            return (
                "❌ Name Not Found\n"
                f"I could not resolve the name `{recipient}`. Please ensure it's a valid and "
                "registered ENS or .base name on the correct network."
            )
        logger.info(f"Resolved {recipient} to {target}")

    try:
        sent = chain.send_value(target, value_wei)
    except Exception as e:
        logger.error(f"Error sending funds: {e}")
        return format_send_error(str(e))

    tx_hash = sent["hash"]
    try:
        receipt = chain.wait_for_receipt(tx_hash)
    except ConfirmationTimeout:
        return format_submitted_unconfirmed(tx_hash, "Send Funds")
    except Exception as e:
        logger.warning(f"Receipt check failed for {tx_hash}: {e}")
        return format_submitted_unconfirmed(tx_hash, "Send Funds")

    if receipt.get("status") == 0:
        return (
            "❌ Transaction Failed\n"
            f"The transaction was mined but reverted. Details: {explorer_link(tx_hash, 'tx')}"
        )
    return format_transaction_response(
        tx_hash,
        "Send Funds",
        {
            "from": sent["from"],
            "to": target,
            "value": amount,
            "blockNumber": receipt.get("blockNumber"),
            "gasUsed": receipt.get("gasUsed"),
        },
    )


def suggested_contribution(goal_eth: str) -> str:
    """
    5% of the goal, clamped to [0.001, 0.1] ETH.
    """
    amount = Decimal(goal_eth) * SUGGESTED_SHARE
    amount = max(SUGGESTED_MIN, min(SUGGESTED_MAX, amount))
    return format(amount.normalize(), "f")


def _resolve_goal(inp: DeployInput) -> str:
    if inp.original_user_input:
        try:
            return parse_amount_from_input(inp.original_user_input)
        except ValueError:
            logger.info(f"No amount in original input; using goalAmount '{inp.goal_amount}'")
    try:
        return parse_amount_from_input(inp.goal_amount)
    except ValueError:
        return inp.goal_amount


def deploy_fundraiser(inp: DeployInput, chain: ChainContext) -> str:
    if not is_valid_address(inp.beneficiary_address):
        return invalid_address_message(inp.beneficiary_address, role="beneficiary")
    try:
        duration = int(inp.duration_in_seconds)
    except ValueError:
        return (
            "❌ Invalid Duration\n"
            f"`{inp.duration_in_seconds}` is not a valid duration in seconds."
        )
    if duration <= 0:
        return "❌ Invalid Duration\nThe fundraiser duration must be positive."

    goal = _resolve_goal(inp)
    goal_wei = _positive_wei(goal)
    if goal_wei is None:
        return _invalid_amount(goal)

    logger.info(
        f"[deploy] beneficiary={inp.beneficiary_address} goal={goal} ETH "
        f"duration={duration}s name={inp.fundraiser_name}"
    )
    try:
        sent = chain.deploy_fundraiser(inp.beneficiary_address, goal_wei, duration)
    except Exception as e:
        logger.error(f"Error deploying fundraiser: {e}")
        return format_deploy_error(str(e))

    tx_hash = sent["hash"]
    try:
        receipt = chain.wait_for_receipt(tx_hash)
    except ConfirmationTimeout:
        return format_deploy_pending(tx_hash, receipt_checked=True)
    except Exception as e:
        logger.warning(f"Receipt check failed for {tx_hash}: {e}")
        return format_deploy_pending(tx_hash, receipt_checked=False)

    if receipt.get("status") == 0:
        return format_deploy_error("Transaction failed - contract deployment reverted")
    if not receipt.get("contractAddress"):
        return format_deploy_pending(tx_hash, receipt_checked=True)
    contract = to_checksum_address(receipt["contractAddress"])
    logger.info(f"[deploy] contract live at {contract} (tx {tx_hash})")

    suggested = suggested_contribution(goal)
    try:
        qr = generate_contribution_qr(contract, suggested, inp.fundraiser_name)
    except QRCodeError as e:
        logger.error(f"QR generation failed: {e}")
        qr = format_qr_failure_note(contract, suggested)
    return format_deploy_response(contract, tx_hash, inp.fundraiser_name, goal, qr)


def get_fundraiser_contributors(inp: ContractInput, chain: ChainContext) -> str:
    contract = inp.contract_address
    if not is_valid_address(contract):
        return invalid_address_message(contract)
    try:
        addresses = get_contributors(contract, url=chain.rpc_url)
    except Exception as e:
        logger.error(f"Error getting contributors: {e}")
        return (
            "❌ Could Not Get Contributors\n"
            "I was unable to fetch the contributor list for this fundraiser.\n"
            f"Error: {e}"
        )
    contributors = [{"address": a, "name": lookup_address(a)} for a in addresses]
    return format_contributors(contract, contributors)


def check_fundraiser_status(inp: ContractInput, chain: ChainContext) -> str:
    contract = inp.contract_address
    if not is_valid_address(contract):
        return invalid_address_message(contract)
    try:
        active = is_fundraiser_active(contract, url=chain.rpc_url)
    except Exception as e:
        logger.error(f"Error checking fundraiser status: {e}")
        return (
            "❌ Could Not Check Status\n"
            "I was unable to check the status of this fundraiser.\n"
            f"Error: {e}"
        )
    return format_status(contract, active)


def generate_contribution_qr_code(inp: ContributionQRInput, chain: ChainContext) -> str:
    if not is_valid_address(inp.contract_address):
        return invalid_address_message(inp.contract_address)
    try:
        qr = generate_contribution_qr(inp.contract_address, inp.amount_in_eth, inp.fundraiser_name)
    except QRCodeError as e:
        return f"❌ QR Code Error\nI encountered an error while generating the QR code: {e}"
    if isinstance(qr, str):
        return qr
    return qr_wire(qr["message"], qr["qrCode"], qr["message"])


def generate_contract_call_qr_code(inp: ContractCallQRInput, chain: ChainContext) -> str:
    if not is_valid_address(inp.contract_address):
        return invalid_address_message(inp.contract_address)
    data = inp.function_data
    if data and not HEX_DATA_RE.match(data):
        return f"❌ Invalid Call Data\nThe call data `{data}` must be 0x-prefixed hex."
    value_wei = None
    if inp.value_in_eth:
        value_wei = _positive_wei(inp.value_in_eth)
        if value_wei is None:
            return _invalid_amount(inp.value_in_eth)
    try:
        qr = generate_contract_qr(inp.contract_address, data, str(value_wei) if value_wei else None)
    except QRCodeError as e:
        return f"❌ QR Code Error\nI encountered an error while generating the QR code: {e}"
    return qr_wire(qr["message"], qr["qrCode"], qr["message"])


def create_wallet_fundraiser(inp: WalletFundraiserInput, chain: ChainContext) -> str:
    """
    Fundraiser that collects straight into the agent wallet (no contract).
    """
    goal_wei = _positive_wei(inp.goal_amount)
    if goal_wei is None:
        return _invalid_amount(inp.goal_amount)
    try:
        chain.init()
    except Exception as e:
        return f"❌ Wallet Unavailable\n{e}"
    address = chain.wallet.address
    try:
        current = eth_from_wei(chain.get_balance(address))
    except Exception as e:
        logger.warning(f"Balance unavailable for wallet fundraiser: {e}")
        current = "0"

    progress = min(Decimal(100), Decimal(current) * 100 / Decimal(inp.goal_amount))
    share_url = compose_fundraiser_url(
        FundraiserParams(
            wallet_address=address,
            goal_amount=inp.goal_amount,
            fundraiser_name=inp.fundraiser_name,
            description=inp.description,
            current_amount=current,
        )
    )
    text = (
        f"🎯 *{inp.fundraiser_name}*\n"
        + (f"{inp.description}\n" if inp.description else "")
        + "\n"
        f"💰 Raised: {current} / {inp.goal_amount} ETH ({progress:.1f}%)\n"
        f"📍 Wallet: {address}\n"
        f"🔗 Share: {share_url}"
    )
    try:
        qr = generate_contribution_qr(address, inp.goal_amount, inp.fundraiser_name)
    except QRCodeError as e:
        logger.error(f"QR generation failed: {e}")
        return text
    if isinstance(qr, str):
        return text + "\n\n" + qr
    return qr_wire(text, qr["qrCode"], qr["message"])


# === Registry ===


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: Dict[str, Any]
    parse: Callable[[Dict[str, Any]], Any]
    handler: Callable[[Any, ChainContext], str]
    # Output goes to the user verbatim instead of back through the model
    direct: bool = False


def _object(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": False,
    }


TOOLS: List[ToolSpec] = [
    ToolSpec(
        name="deploy_fundraiser_contract",
        description=(
            "Creates and deploys a NEW fundraising smart contract from scratch. Use this when users "
            "want to CREATE a new fundraiser (keywords: 'create', 'deploy', 'new fundraiser', "
            "'start a fundraiser'). The address provided is the BENEFICIARY who will receive the "
            "funds, NOT an existing contract. Automatically includes QR code generation. "
            "For '30 days' duration, use 2592000 seconds."
        ),
        parameters=_object(
            {
                "beneficiaryAddress": {"type": "string", "description": "Address that receives the funds"},
                "goalAmount": {"type": "string", "description": "Fundraising goal in ETH"},
                "durationInSeconds": {"type": "string", "description": "Duration in seconds (default 2592000)"},
                "fundraiserName": {"type": "string", "description": "Name/purpose of the fundraiser"},
                "originalUserInput": {"type": "string", "description": "The original user message, for amount parsing"},
            },
            ["beneficiaryAddress", "goalAmount"],
        ),
        parse=DeployInput.from_args,
        handler=deploy_fundraiser,
        direct=True,
    ),
    ToolSpec(
        name="generate_contribution_qr_code",
        description=(
            "Generates a QR code for contributing to an EXISTING fundraiser contract. Use this ONLY "
            "when the user asks for a QR code for an already-deployed contract address. Do NOT use "
            "this for creating NEW fundraisers."
        ),
        parameters=_object(
            {
                "contractAddress": {"type": "string", "description": "The existing contract address"},
                "amountInEth": {"type": "string", "description": "The contribution amount in ETH"},
                "fundraiserName": {"type": "string", "description": "The name of the fundraiser"},
            },
            ["contractAddress", "amountInEth", "fundraiserName"],
        ),
        parse=ContributionQRInput.from_args,
        handler=generate_contribution_qr_code,
        direct=True,
    ),
    ToolSpec(
        name="generate_contract_call_qr_code",
        description=(
            "Generates a QR code that opens a contract call in a mobile wallet, with optional "
            "0x-prefixed call data and an optional ETH value. Use generate_contribution_qr_code "
            "for plain contributions."
        ),
        parameters=_object(
            {
                "contractAddress": {"type": "string", "description": "The contract to call"},
                "functionData": {"type": "string", "description": "0x-prefixed ABI-encoded call data"},
                "valueInEth": {"type": "string", "description": "ETH to send with the call"},
            },
            ["contractAddress"],
        ),
        parse=ContractCallQRInput.from_args,
        handler=generate_contract_call_qr_code,
        direct=True,
    ),
    ToolSpec(
        name="get_fundraiser_contributors",
        description="Gets the list of contributors for a fundraiser contract.",
        parameters=_object({"contractAddress": {"type": "string"}}, ["contractAddress"]),
        parse=ContractInput.from_args,
        handler=get_fundraiser_contributors,
    ),
    ToolSpec(
        name="check_fundraiser_status",
        description="Checks if a fundraiser contract is still active.",
        parameters=_object({"contractAddress": {"type": "string"}}, ["contractAddress"]),
        parse=ContractInput.from_args,
        handler=check_fundraiser_status,
    ),
    ToolSpec(
        name="check_wallet_balance",
        description="Checks the ETH balance of a wallet address. Omit the address for the agent's own wallet.",
        parameters=_object({"address": {"type": "string"}}, []),
        parse=BalanceInput.from_args,
        handler=check_wallet_balance,
    ),
    ToolSpec(
        name="send_funds_to_address_or_ens",
        description=(
            "Sends ETH to a given address or ENS name. Example: 'Send 0.1 ETH to vitalik.eth'."
        ),
        parameters=_object(
            {
                "recipient": {"type": "string", "description": "Recipient 0x address or ENS name"},
                "amountInEth": {"type": "string", "description": "Amount of ETH to send (e.g. '0.1')"},
            },
            ["recipient", "amountInEth"],
        ),
        parse=SendFundsInput.from_args,
        handler=send_funds,
        direct=True,
    ),
    ToolSpec(
        name="create_wallet_fundraiser",
        description=(
            "Starts a simple fundraiser that collects directly into the agent's wallet, without "
            "deploying a contract. Returns a summary, a share link and a contribution QR code."
        ),
        parameters=_object(
            {
                "fundraiserName": {"type": "string"},
                "goalAmount": {"type": "string", "description": "Goal in ETH"},
                "description": {"type": "string"},
            },
            ["fundraiserName", "goalAmount"],
        ),
        parse=WalletFundraiserInput.from_args,
        handler=create_wallet_fundraiser,
        direct=True,
    ),
]

TOOLS_BY_NAME: Dict[str, ToolSpec] = {t.name: t for t in TOOLS}

tools_schema = [
    {
        "type": "function",
        "function": {"name": t.name, "description": t.description, "parameters": t.parameters},
    }
    for t in TOOLS
]


def dispatch_tool(func_name: str, args: Dict[str, Any], chain: ChainContext) -> str:
    spec = TOOLS_BY_NAME.get(func_name)
    if spec is None:
        return f"❌ Unsupported tool: {func_name}"
    try:
        inp = spec.parse(args or {})
    except ToolInputError as e:
        return f"❌ Invalid Input\n{e}"
    try:
        return spec.handler(inp, chain)
    except Exception as e:
        logger.error(f"Tool {func_name} failed: {e}")
        return f"❌ Tool `{func_name}` failed: {e}"
