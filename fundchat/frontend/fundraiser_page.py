import base64
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import requests
import streamlit as st

from fundchat.config import API_URL
from fundchat.formatting import QRCodeError, generate_contribution_qr
from fundchat.links import (
    FundraiserParams,
    compose_fundraiser_url,
    params_from_link,
    params_from_query,
)
from fundchat.render import coinbase_wallet_link
from fundchat.utils import explorer_link


def _params_from_page() -> Optional[FundraiserParams]:
    """
    From ?walletAddress=...&goal=...&name=... or a pasted share link.
    st.query_params values arrive decoded once; they are not decoded again.
    """
    q = st.query_params
    address = q.get("walletAddress") or q.get("address")
    if address:
        return params_from_query(address, {k: q.get(k) for k in ("goal", "name", "description", "current")})
    link = st.text_input("Paste a fundraiser link")
    if not link:
        return None
    return params_from_link(link)


def _live_status(params: FundraiserParams) -> Optional[Dict[str, Any]]:
    try:
        resp = requests.get(
            f"{API_URL}/api/fundraiser/{params.wallet_address}",
            params={"name": params.fundraiser_name, "goal": params.goal_amount},
            timeout=10,
        )
        resp.raise_for_status()
        return resp.json()
    except (requests.RequestException, ValueError):
        return None


def _progress(current: str, goal: str) -> float:
    try:
        return float(min(Decimal(1), Decimal(current) / Decimal(goal)))
    except (InvalidOperation, ZeroDivisionError):
        return 0.0


def main() -> None:
    st.set_page_config(page_title="Fundraiser", page_icon="🎯", layout="centered")
    try:
        params = _params_from_page()
    except ValueError as e:
        st.error(f"❌ {e}")
        return
    if params is None:
        st.info("Open a fundraiser link to see its details.")
        return

    live = _live_status(params)
    current = (live or {}).get("currentAmount") or params.current_amount

    st.title(f"🎯 {params.fundraiser_name}")
    if params.description:
        st.write(params.description)
    st.progress(_progress(current, params.goal_amount), text=f"{current} / {params.goal_amount} ETH raised")
    st.markdown(f"📍 Wallet: [`{params.wallet_address}`]({explorer_link(params.wallet_address, 'address')})")
    st.code(params.wallet_address, language=None)

    st.subheader("Contribute")
    amount = st.text_input("Amount (ETH)", value="0.01")
    if amount:
        try:
            qr = generate_contribution_qr(params.wallet_address, amount, params.fundraiser_name)
        except QRCodeError as e:
            st.error(str(e))
            qr = None
        if isinstance(qr, str):
            st.error(qr)
        elif qr:
            st.image(base64.b64decode(qr["qrCode"].split(",", 1)[1]), width=256)
            st.markdown(qr["message"])
            link = coinbase_wallet_link(params.wallet_address, amount)
            if link:
                st.link_button(f"Contribute {amount} ETH via Coinbase Wallet ↗", link)

    st.subheader("Share")
    st.code(compose_fundraiser_url(params), language=None)


main()
