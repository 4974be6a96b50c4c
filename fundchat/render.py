import html
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from .payload import ParsedMessage, Token, QR_RESPONSE, MARKDOWN_QR
from .registry import active_network
from .utils import explorer_link, short_hex, wei_from_eth, eip681_payment_uri

AMOUNT_RE = re.compile(r"(\d+\.?\d*)\s*ETH", re.I)
ADDRESS_IN_TEXT_RE = re.compile(r"(0x[a-fA-F0-9]{40})(?![a-fA-F0-9])")
COINBASE_DAPP = "https://go.cb-w.com/dapp"


def extract_contribution_amount(message: str) -> Optional[str]:
    m = AMOUNT_RE.search(message or "")
    return m.group(1) if m else None


def extract_wallet_address(message: str) -> Optional[str]:
    m = ADDRESS_IN_TEXT_RE.search(message or "")
    return m.group(1) if m else None


def coinbase_wallet_link(address: str, amount_eth: str, chain_id: Optional[int] = None) -> Optional[str]:
    try:
        wei = wei_from_eth(amount_eth)
    except ValueError:
        return None
    uri = eip681_payment_uri(address, wei, chain_id or active_network()["chain_id"])
    return f"{COINBASE_DAPP}?cb_url={quote(uri, safe='')}"


def qr_wallet_link(parsed: ParsedMessage) -> Optional[Tuple[str, str, str]]:
    """
    (address, amount, deep link) for a QR reply that names both.
    """
    if not parsed.qr_code:
        return None
    source = parsed.qr_message or parsed.text
    address = extract_wallet_address(source)
    amount = extract_contribution_amount(source)
    if not (address and amount):
        return None
    link = coinbase_wallet_link(address, amount)
    return (address, amount, link) if link else None


# === Chat log ===

SYSTEM_SENDER = "system"


def chat_entry(content: str, sender: str, is_user: bool = False) -> Dict[str, Any]:
    return {
        "id": uuid.uuid4().hex,
        "content": content,
        "senderAddress": sender,
        "isUser": is_user,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def message_lane(m: Dict[str, Any]) -> str:
    """
    Chat lane for a logged entry. Authorship comes from the entry itself,
    not from whichever wallet is connected now.
    """
    if m.get("isUser"):
        return "user"
    if m.get("senderAddress") == SYSTEM_SENDER:
        return "system"
    return "assistant"


# === Markdown (Streamlit) ===


def tokens_to_markdown(tokens: List[Token]) -> str:
    out = []
    for t in tokens:
        if t.kind == "url":
            out.append(f"[{t.value}]({t.value})")
        elif t.kind == "bold":
            out.append(f"**{t.value}**")
        elif t.kind == "address":
            out.append(f"`{t.value}`")
        elif t.kind == "tx_hash":
            out.append(f"[`{short_hex(t.value)}`]({explorer_link(t.value, 'tx')})")
        else:
            out.append(t.value)
    return "".join(out)


def copyable_values(parsed: ParsedMessage) -> List[Tuple[str, str]]:
    """
    Unique (label, value) pairs to show behind copy buttons.
    """
    seen = set()
    out = []
    for t in parsed.tokens:
        if t.kind not in ("address", "tx_hash") or t.value in seen:
            continue
        seen.add(t.value)
        out.append(("Address" if t.kind == "address" else "Transaction", t.value))
    return out


# === HTML ===


def _copy_button(value: str) -> str:
    v = html.escape(value, quote=True)
    return (
        f'<button class="copy-btn" data-copy="{v}" '
        f"onclick=\"navigator.clipboard.writeText('{v}')\" title=\"Copy\">📋</button>"
    )


def tokens_to_html(tokens: List[Token]) -> str:
    out = []
    for t in tokens:
        v = html.escape(t.value, quote=True)
        if t.kind == "url":
            out.append(f'<a href="{v}" target="_blank" rel="noopener noreferrer">{v}</a>')
        elif t.kind == "bold":
            out.append(f"<strong>{v}</strong>")
        elif t.kind == "address":
            out.append(f'<code class="address">{v}</code>{_copy_button(t.value)}')
        elif t.kind == "tx_hash":
            href = html.escape(explorer_link(t.value, "tx"), quote=True)
            out.append(
                f'<a class="tx-link" href="{href}" target="_blank" rel="noopener noreferrer">'
                f"{html.escape(short_hex(t.value))}</a>{_copy_button(t.value)}"
            )
        else:
            out.append(v)
    return "".join(out)


def render_message_html(parsed: ParsedMessage) -> str:
    body = f'<div class="message-text">{tokens_to_html(parsed.tokens)}</div>'
    if parsed.classification not in (QR_RESPONSE, MARKDOWN_QR) or not parsed.qr_code:
        return f'<div class="message-content">{body}</div>'

    src = html.escape(parsed.qr_code, quote=True)
    parts = [
        body,
        '<div class="qr-code-container">',
        f'<img class="qr-code-png" src="{src}" alt="Contribution QR Code"/>',
    ]
    if parsed.qr_message and parsed.qr_message != parsed.text:
        parts.append(f'<div class="qr-message">{html.escape(parsed.qr_message)}</div>')
    wallet = qr_wallet_link(parsed)
    if wallet:
        address, amount, link = wallet
        parts.append(
            f'<a class="coinbase-wallet-link" href="{html.escape(link, quote=True)}">'
            f"Contribute {html.escape(amount)} ETH via Coinbase Wallet ↗</a>"
        )
        parts.append(f'<code class="address">{html.escape(address)}</code>{_copy_button(address)}')
    parts.append("</div>")
    return '<div class="message-content">' + "".join(parts) + "</div>"
