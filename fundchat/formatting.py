"""
Reply composition for chain operations.

Tool outcomes become a single string the chat client can render: plain
markdown, or markdown followed by a one-line JSON QR payload. The client-side
counterpart lives in payload.py.
"""
import base64
import json
import logging
from io import BytesIO
from typing import Dict, Any, Optional, Union, TypedDict

import qrcode
from PIL import Image
from qrcode.image.pil import PilImage

from .registry import active_network
from .utils import (
    is_valid_address,
    is_valid_tx_hash,
    wei_from_eth,
    eip681_payment_uri,
    explorer_link,
    short_hex,
)

logger = logging.getLogger(__name__)

QR_SIZE_PX = 256
QR_BORDER = 2
PNG_DATA_URL_PREFIX = "data:image/png;base64,"


class QRCodePayload(TypedDict):
    message: str
    qrCode: str


class QRCodeError(RuntimeError):
    pass


def make_qr_png(data: str) -> tuple[bytes, str]:
    """
    Create a 256px PNG QR and return (png_bytes, data_url).
    """
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=QR_BORDER,
    )
    qr.add_data(data)
    qr.make(fit=True)
    img: PilImage = qr.make_image(fill_color="black", back_color="white")
    sized = img.convert("RGB").resize(
        (QR_SIZE_PX, QR_SIZE_PX), Image.Resampling.NEAREST
    )

    buf = BytesIO()
    sized.save(buf, format="PNG")
    png_bytes = buf.getvalue()
    data_url = PNG_DATA_URL_PREFIX + base64.b64encode(png_bytes).decode("ascii")
    return png_bytes, data_url


def generate_qr_code(data: str, description: str = "QR Code") -> str:
    """
    Raw base64 PNG for data. Raises QRCodeError on render failure.
    """
    try:
        logger.debug(f"Generating QR code for data: {data[:50]}...")
        png_bytes, _ = make_qr_png(data)
        return base64.b64encode(png_bytes).decode("ascii")
    except Exception as e:
        logger.error(f"QR code generation failed: {e}")
        raise QRCodeError(f"QR Code Generation Failed for {description}") from e


def invalid_address_message(address: str, role: str = "contract") -> str:
    return (
        "❌ Invalid Address\n"
        f"The {role} address `{address}` is not valid. Please check and try again."
    )


def generate_contribution_qr(
    address: str, amount_eth: str, fundraiser_name: str
) -> Union[QRCodePayload, str]:
    """
    Payment QR for sending amount_eth to address (EIP-681, value in wei).

    Returns {"message", "qrCode"} on success. Invalid input never raises: it
    yields a user-facing error string instead.
    """
    if not is_valid_address(address):
        return invalid_address_message(address)
    try:
        amount_wei = wei_from_eth(amount_eth)
    except ValueError:
        return (
            "❌ Invalid Amount\n"
            f"The amount `{amount_eth}` is not a valid ETH amount. Please check and try again."
        )

    qr_b64 = generate_qr_code(
        eip681_payment_uri(address, amount_wei), f"Contribution QR for {fundraiser_name}"
    )
    message = (
        f"📱 Scan to Contribute {amount_eth} ETH\n"
        f"\n"
        f"🎯 **{fundraiser_name}**\n"
        f"💰 Amount: {amount_eth} ETH\n"
        f"📍 Contract: [{short_hex(address)}]({explorer_link(address, 'address')})\n"
        f"\n"
        f"Scan with your mobile wallet and confirm the transaction to support this fundraiser!"
    )
    return {"message": message, "qrCode": PNG_DATA_URL_PREFIX + qr_b64}


def generate_contract_qr(
    contract_address: str, function_data: Optional[str] = None, value: Optional[str] = None
) -> QRCodePayload:
    uri = f"ethereum:{contract_address}"
    params = []
    if function_data:
        params.append(f"data={function_data}")
    if value:
        params.append(f"value={value}")
    if params:
        uri += "?" + "&".join(params)
    qr_b64 = generate_qr_code(uri, "Contract Interaction QR Code")
    return {
        "message": (
            "Scan this QR code to interact with the contract:\n\n"
            f"Contract Address: `{contract_address}`"
        ),
        "qrCode": PNG_DATA_URL_PREFIX + qr_b64,
    }


def format_transaction_response(
    tx_hash: str, action: str, details: Optional[Dict[str, Any]] = None
) -> str:
    if not is_valid_tx_hash(tx_hash):
        return (
            "❌ Invalid Transaction Hash\n"
            f"The transaction hash '{tx_hash}' appears to be invalid."
        )
    net = active_network()["name"]
    text = (
        f"✅ *{action} Successful!*\n"
        f"\n"
        f"🔗 *Transaction Hash:* {tx_hash}\n"
        f"   View on {net} Scan: {explorer_link(tx_hash, 'tx')}"
    )
    if details:
        text += "\n\n📋 *Transaction Details:*"
        if details.get("blockNumber"):
            text += f"\n- Block Number: {details['blockNumber']}"
        if details.get("gasUsed"):
            text += f"\n- Gas Used: {details['gasUsed']}"
        if details.get("gasPrice"):
            text += f"\n- Gas Price: {details['gasPrice']} gwei"
        if details.get("from"):
            text += f"\n- From: {details['from']}"
        if details.get("to"):
            text += f"\n- To: {details['to']}"
        if details.get("value"):
            text += f"\n- Value: {details['value']} ETH"
    return text


def format_submitted_unconfirmed(tx_hash: str, action: str) -> str:
    net = active_network()["name"]
    return (
        f"⏳ *{action} Submitted*\n"
        f"\n"
        f"Your transaction was broadcast but has not been confirmed yet.\n"
        f"\n"
        f"🔗 *Transaction Hash:* {tx_hash}\n"
        f"   Track it on {net} Scan: {explorer_link(tx_hash, 'tx')}\n"
        f"\n"
        f"Check back in a minute or two."
    )


def _deploy_main_section(
    contract_address: str, tx_hash: str, fundraiser_name: str, goal_amount: str
) -> str:
    net = active_network()["name"]
    return (
        f"🎉 *{fundraiser_name}* is Live!\n"
        f"\n"
        f"Your fundraiser has been successfully deployed on {net}!\n"
        f"\n"
        f"📋 *Deployment Progress:*\n"
        f"✅ Step 1/5: Parameters prepared\n"
        f"✅ Step 2/5: Validation completed\n"
        f"✅ Step 3/5: Gas optimized for speed\n"
        f"✅ Step 4/5: Transaction submitted\n"
        f"✅ Step 5/5: Blockchain confirmation received\n"
        f"\n"
        f"📋 *Details:*\n"
        f"• Goal: {goal_amount} ETH\n"
        f"• Contract: {short_hex(contract_address)} (view at {explorer_link(contract_address, 'address')})\n"
        f"• Transaction: {short_hex(tx_hash)} (view at {explorer_link(tx_hash, 'tx')})\n"
        f"\n"
        f"🚀 *Your fundraiser is now ready to receive contributions!*\n"
        f"\n"
        f"*Share these details:*\n"
        f"- Contract Address: {contract_address}\n"
        f"- Goal Amount: {goal_amount} ETH\n"
        f"- Network: {net}\n"
        f"\n"
        f"*Need help?* Ask me to generate additional QR codes for different contribution amounts!"
    )


def format_deploy_response(
    contract_address: str,
    tx_hash: str,
    fundraiser_name: str,
    goal_amount: str,
    qr: Union[QRCodePayload, Dict[str, Any], str, None],
) -> str:
    """
    Deployment confirmation plus a trailing QR segment.

    | qr                                  | trailing segment            |
    |-------------------------------------|-----------------------------|
    | dict with qrCode and message        | json.dumps(qr)              |
    | JSON string with qrCode and message | the string, unchanged       |
    | any other string                    | the string, as an error note|
    | None                                | nothing                     |

    The confirmation section is always present.
    """
    main = _deploy_main_section(contract_address, tx_hash, fundraiser_name, goal_amount)

    if isinstance(qr, dict) and qr.get("qrCode") and qr.get("message"):
        return main + "\n\n" + json.dumps({"message": qr["message"], "qrCode": qr["qrCode"]})

    if isinstance(qr, str):
        try:
            data = json.loads(qr)
        except ValueError:
            logger.info("QR segment is not JSON; appending as note")
            return main + "\n\n" + qr
        if isinstance(data, dict) and data.get("qrCode") and data.get("message"):
            return main + "\n\n" + qr
        logger.info("QR segment is JSON without QR fields; appending as note")
        return main + "\n\n" + qr

    return main


def format_deploy_pending(tx_hash: str, receipt_checked: bool = True) -> str:
    net = active_network()["name"]
    link = explorer_link(tx_hash, "tx")
    if receipt_checked:
        return (
            "⏳ **Deployment In Progress**\n"
            "\n"
            "Your fundraiser deployment transaction has been submitted successfully!\n"
            "\n"
            "📋 **Progress:**\n"
            "✅ Step 1/5: Parameters prepared\n"
            "✅ Step 2/5: Validation completed\n"
            "✅ Step 3/5: Gas optimized (50% higher for speed)\n"
            "✅ Step 4/5: Transaction submitted\n"
            "⏳ Step 5/5: Waiting for blockchain confirmation...\n"
            "\n"
            f"🔗 **Transaction Hash:** `{tx_hash}`\n"
            f"📍 **View Status:** [{net} Scan]({link})\n"
            "\n"
            "**Note:** The contract deployment is in progress. Please check back in a few "
            "minutes or monitor the transaction using the provided link."
        )
    return (
        "⏳ **Deployment Submitted - Please Wait**\n"
        "\n"
        "Your fundraiser deployment has been submitted to the blockchain!\n"
        "\n"
        f"🔗 **Transaction Hash:** `{tx_hash}`\n"
        f"📍 **Track Progress:** [{net} Scan]({link})\n"
        "\n"
        "**Next Steps:**\n"
        "1. Monitor the transaction using the link above\n"
        "2. Once confirmed, your fundraiser will be live\n"
        "3. Ask me for a contribution QR code once it is live"
    )


def format_qr_failure_note(contract_address: str, suggested_amount: str) -> str:
    return (
        "**QR Code generation failed, but here are the details:**\n"
        "\n"
        f"📍 Contract Address: `{contract_address}`\n"
        f"💰 Suggested Amount: {suggested_amount} ETH\n"
        f"🔗 View Contract: [{active_network()['name']} Scan]({explorer_link(contract_address, 'address')})\n"
        "\n"
        "You can manually send contributions to the contract address above."
    )


def format_balance(address: str, balance_eth: str) -> str:
    return (
        "💰 Wallet Balance\n"
        "\n"
        f"- Address: [`{short_hex(address)}`]({explorer_link(address, 'address')})\n"
        f"- Balance: {balance_eth} ETH (on {active_network()['name']})"
    )


def format_status(contract_address: str, is_active: bool) -> str:
    status = (
        "✅ Active: This fundraiser is currently accepting contributions."
        if is_active
        else "❌ Ended: This fundraiser has ended and can no longer accept contributions."
    )
    return (
        "📊 Fundraiser Status\n"
        "\n"
        f"{status}\n"
        "\n"
        "---\n"
        f"🔍 View Contract: [`{short_hex(contract_address)}`]({explorer_link(contract_address, 'address')})"
    )


def format_contributors(contract_address: str, contributors: list[Dict[str, Optional[str]]]) -> str:
    link = f"[{short_hex(contract_address)}]({explorer_link(contract_address, 'address')})"
    if not contributors:
        return (
            "🤔 No Contributions Yet\n"
            "This fundraiser hasn't received any contributions. Be the first!\n"
            "\n"
            f"🔍 View Contract: {link}"
        )
    lines = []
    for c in contributors:
        short = short_hex(c["address"])
        label = c.get("name") or short
        lines.append(f"- {label}: [`{short}`]({explorer_link(c['address'], 'address')})")
    return (
        "👥 Contributors for Fundraiser\n"
        "\n"
        "Here are the amazing people who have contributed:\n"
        + "\n".join(lines)
        + "\n\n---\n"
        f"🔍 View Contract: {link}"
    )


# === Error classification ===

ERROR_CLASSES = [
    ("insufficient_funds", ("insufficient funds",)),
    ("nonce", ("nonce",)),
    ("auth", ("401", "unauthorized", "invalid api key")),
    ("invalid_address", ("invalid address",)),
    ("network", ("network", "timeout", "timed out", "connection")),
]


def classify_error(message: str) -> str:
    m = (message or "").lower()
    for kind, needles in ERROR_CLASSES:
        if any(n in m for n in needles):
            return kind
    return "unknown"


def format_deploy_error(message: str) -> str:
    net = active_network()
    kind = classify_error(message)
    if kind == "insufficient_funds":
        faucet = f"\n1. Get testnet ETH from the [{net['name']} Faucet]({net['faucet']})" if net.get("faucet") else ""
        return (
            "❌ **Insufficient Funds**\n"
            "\n"
            "Your wallet doesn't have enough ETH to deploy the contract.\n"
            "\n"
            "**Required:**\n"
            "- Contract deployment gas: ~0.01-0.02 ETH\n"
            f"- Network: {net['name']}\n"
            "\n"
            f"**Solutions:**{faucet}\n"
            "- Try again once you have sufficient ETH\n"
            "\n"
            '**Wallet Balance Check:** You can check your balance by asking "What\'s my wallet balance?"'
        )
    if kind == "nonce":
        return (
            "🔄 **Transaction Nonce Error**\n"
            "\n"
            "There was a nonce conflict. Please try the deployment again.\n"
            "\n"
            "**This usually happens when:**\n"
            "- Multiple transactions are sent too quickly\n"
            "- Network latency causes timing issues\n"
            "\n"
            "**Solution:** Simply try deploying the fundraiser again."
        )
    return (
        "❌ **Contract Deployment Failed**\n"
        "\n"
        "I encountered an error while deploying your fundraiser contract.\n"
        "\n"
        f"**Error:** {message}\n"
        "\n"
        "**Common Solutions:**\n"
        "1. **Insufficient Funds:** Get testnet ETH from a faucet\n"
        "2. **Network Issues:** Try again in a few minutes\n"
        "3. **Gas Price:** The network might be congested\n"
        "\n"
        "Would you like me to try deploying again?"
    )


def format_send_error(message: str) -> str:
    if classify_error(message) == "insufficient_funds":
        return (
            "❌ Insufficient Funds\n"
            "The wallet does not have enough ETH to complete this transaction (including gas fees)."
        )
    return (
        "❌ Transaction Failed\n"
        f"I encountered an error while trying to send the funds: {message}"
    )


def format_agent_error(message: str) -> str:
    kind = classify_error(message)
    if kind == "auth":
        return "❌ Authentication error with AI service. Please check the API configuration."
    if kind == "insufficient_funds":
        return (
            "❌ Insufficient funds! Please make sure you have enough ETH in your wallet for "
            "this transaction."
        )
    if kind == "invalid_address":
        return (
            "❌ Invalid address format! Please provide a valid Ethereum address "
            "(starting with 0x) or ENS name."
        )
    if kind == "network":
        return "❌ Network error! Please check your connection and try again."
    return f"❌ Sorry, I encountered an error: {message}. Please try again or rephrase your request."
