import base64
import uuid
from typing import Any, Dict, Optional

import requests
import streamlit as st

from fundchat.config import API_URL
from fundchat.payload import parse_hybrid_payload, ParsedMessage
from fundchat.render import (
    SYSTEM_SENDER,
    chat_entry,
    copyable_values,
    message_lane,
    qr_wallet_link,
    tokens_to_markdown,
)
from fundchat.utils import is_valid_address

AGENT_SENDER = "agent"
REQUEST_TIMEOUT_S = 120

QUICK_ACTIONS = {
    "💰 Check balance": "What's my wallet balance?",
    "🎯 Create fundraiser": "Create a fundraiser for 0.5 ETH for my wallet",
    "📱 Contribution QR": "Generate a QR code to contribute 0.01 ETH to my fundraiser",
}


def _init_state() -> None:
    if "session_id" not in st.session_state:
        st.session_state.session_id = f"session-{uuid.uuid4().hex[:12]}"
    if "messages" not in st.session_state:
        st.session_state.messages = []
    if "wallet_address" not in st.session_state:
        st.session_state.wallet_address = ""


def _append(content: str, sender: str, is_user: bool = False) -> None:
    st.session_state.messages.append(chat_entry(content, sender, is_user))


def _qr_image(data_url: str):
    header, _, b64 = data_url.partition(",")
    if "png" in header:
        st.image(base64.b64decode(b64), width=256, caption="Contribution QR Code")
    else:
        st.markdown(f'<img src="{data_url}" width="256" alt="Contribution QR Code"/>', unsafe_allow_html=True)


def _render_parsed(parsed: ParsedMessage) -> None:
    st.markdown(tokens_to_markdown(parsed.tokens))
    if parsed.qr_code:
        _qr_image(parsed.qr_code)
        if parsed.qr_message and parsed.qr_message != parsed.text:
            st.markdown(parsed.qr_message)
        wallet = qr_wallet_link(parsed)
        if wallet:
            address, amount, link = wallet
            st.link_button(f"Contribute {amount} ETH via Coinbase Wallet ↗", link)
    for label, value in copyable_values(parsed):
        st.caption(label)
        st.code(value, language=None)


def _render_message(m: Dict[str, Any]) -> None:
    lane = message_lane(m)
    if lane == "system":
        with st.chat_message("assistant", avatar="⚠️"):
            st.error(m["content"])
        return
    with st.chat_message(lane):
        if lane == "user":
            st.markdown(m["content"])
        else:
            _render_parsed(parse_hybrid_payload(m["content"]))


def _send(text: str) -> Optional[str]:
    body = {
        "message": text,
        "sessionId": st.session_state.session_id,
        "walletAddress": st.session_state.wallet_address or None,
    }
    try:
        resp = requests.post(f"{API_URL}/api/chat", json=body, timeout=REQUEST_TIMEOUT_S)
    except requests.RequestException as e:
        _append(f"Could not reach the agent: {e}", SYSTEM_SENDER)
        return None
    if resp.status_code != 200:
        try:
            err = resp.json().get("error") or resp.text
        except ValueError:
            err = resp.text
        _append(f"Error {resp.status_code}: {err}", SYSTEM_SENDER)
        return None
    reply = resp.json().get("response", "")
    _append(reply, AGENT_SENDER)
    return reply


def main() -> None:
    st.set_page_config(page_title="Zeon Fundraiser Agent", page_icon="🎯", layout="centered")
    _init_state()

    with st.sidebar:
        st.header("Wallet")
        address = st.text_input("Your wallet address", value=st.session_state.wallet_address)
        if address and not is_valid_address(address):
            st.warning("That doesn't look like a 0x address (40 hex characters).")
        else:
            st.session_state.wallet_address = address
        st.caption(f"Session: `{st.session_state.session_id}`")
        if st.button("New conversation"):
            st.session_state.messages = []
            st.session_state.session_id = f"session-{uuid.uuid4().hex[:12]}"
            st.rerun()

    st.title("🎯 Zeon Fundraiser Agent")

    for m in st.session_state.messages:
        _render_message(m)

    pending = None
    cols = st.columns(len(QUICK_ACTIONS))
    for col, (label, prompt) in zip(cols, QUICK_ACTIONS.items()):
        with col:
            if st.button(label, use_container_width=True):
                pending = prompt

    if prompt := st.chat_input("Ask me to create a fundraiser, send ETH, or make a QR code..."):
        pending = prompt

    if pending:
        _append(pending, st.session_state.wallet_address or "user", is_user=True)
        with st.spinner("Thinking..."):
            _send(pending)
        st.rerun()


main()
