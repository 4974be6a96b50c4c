import json
from unittest.mock import MagicMock, patch

import pytest

from fundchat.chain import ConfirmationTimeout
from fundchat.ens import NameResolutionTimeout
from fundchat.payload import QR_RESPONSE, parse_hybrid_payload
from fundchat.tools import TOOLS, dispatch_tool, suggested_contribution, tools_schema

BAD = "not-an-address"
BENEFICIARY = "0x7805B1557019e15BF3E6903d1bE02c2038da14D2"
DEPLOYED = "0x" + "5" * 40


@pytest.fixture
def chain():
    c = MagicMock()
    c.rpc_url = "http://rpc.invalid"
    c.wallet.address = "0x" + "9" * 40
    return c


@pytest.mark.parametrize(
    "name,args",
    [
        ("generate_contribution_qr_code", {"contractAddress": BAD, "amountInEth": "0.05", "fundraiserName": "X"}),
        ("get_fundraiser_contributors", {"contractAddress": BAD}),
        ("check_fundraiser_status", {"contractAddress": BAD}),
        ("check_wallet_balance", {"address": BAD}),
        ("deploy_fundraiser_contract", {"beneficiaryAddress": BAD, "goalAmount": "1"}),
    ],
)
def test_invalid_address_never_touches_chain(chain, name, args):
    with patch("fundchat.tools.get_contributors") as contributors, patch(
        "fundchat.tools.is_fundraiser_active"
    ) as active, patch("fundchat.rpc.requests.post") as post:
        out = dispatch_tool(name, args, chain)
    assert "Invalid Address" in out
    assert chain.method_calls == []
    contributors.assert_not_called()
    active.assert_not_called()
    post.assert_not_called()


def test_invalid_recipient(chain):
    out = dispatch_tool("send_funds_to_address_or_ens", {"recipient": "0x12", "amountInEth": "0.1"}, chain)
    assert "Invalid Recipient" in out
    assert chain.method_calls == []


def test_unknown_tool_and_missing_args(chain):
    assert "Unsupported tool" in dispatch_tool("mint_nft", {}, chain)
    assert "Missing required argument 'contractAddress'" in dispatch_tool("check_fundraiser_status", {}, chain)


def test_schema_lists_every_tool():
    names = [t["function"]["name"] for t in tools_schema]
    assert names == [t.name for t in TOOLS]
    assert "send_funds_to_address_or_ens" in names


def test_qr_tool_returns_canonical_payload(chain, contract_address):
    out = dispatch_tool(
        "generate_contribution_qr_code",
        {"contractAddress": contract_address, "amountInEth": "0.05", "fundraiserName": "Web3 Ladies"},
        chain,
    )
    data = json.loads(out)
    assert data["kind"] == "qr"
    assert data["qrCode"].startswith("data:image/png;base64,")
    assert "0.05 ETH" in data["qrMessage"]


def test_contract_call_qr(chain, contract_address):
    with patch("fundchat.formatting.generate_qr_code", return_value="AAAA") as qr:
        out = dispatch_tool(
            "generate_contract_call_qr_code",
            {"contractAddress": contract_address, "functionData": "0xd0e30db0", "valueInEth": "0.01"},
            chain,
        )
    data = json.loads(out)
    assert data["kind"] == "qr"
    assert data["qrCode"] == "data:image/png;base64,AAAA"
    assert contract_address in data["qrMessage"]
    assert qr.call_args.args[0] == f"ethereum:{contract_address}?data=0xd0e30db0&value=10000000000000000"
    assert chain.method_calls == []


@pytest.mark.parametrize(
    "args,error",
    [
        ({"contractAddress": BAD}, "Invalid Address"),
        ({"contractAddress": BENEFICIARY, "functionData": "deposit()"}, "Invalid Call Data"),
        ({"contractAddress": BENEFICIARY, "valueInEth": "-1"}, "Invalid Amount"),
    ],
)
def test_contract_call_qr_rejects_bad_input(chain, args, error):
    assert error in dispatch_tool("generate_contract_call_qr_code", args, chain)


def test_send_confirmed(chain, tx_hash):
    chain.send_value.return_value = {"hash": tx_hash, "gas_price": 1, "from": chain.wallet.address}
    chain.wait_for_receipt.return_value = {"status": 1, "blockNumber": 12, "gasUsed": 21000}
    out = dispatch_tool(
        "send_funds_to_address_or_ens", {"recipient": BENEFICIARY, "amountInEth": "0.1"}, chain
    )
    chain.send_value.assert_called_once_with(BENEFICIARY, 10**17)
    assert "Send Funds Successful" in out
    assert tx_hash in out


def test_send_unconfirmed_reports_hash(chain, tx_hash):
    chain.send_value.return_value = {"hash": tx_hash, "gas_price": 1, "from": chain.wallet.address}
    chain.wait_for_receipt.side_effect = ConfirmationTimeout(tx_hash, 60)
    out = dispatch_tool(
        "send_funds_to_address_or_ens", {"recipient": BENEFICIARY, "amountInEth": "0.1"}, chain
    )
    assert "Submitted" in out
    assert tx_hash in out
    assert f"/tx/{tx_hash}" in out


def test_send_insufficient_funds(chain):
    chain.send_value.side_effect = RuntimeError("insufficient funds for gas * price + value")
    out = dispatch_tool(
        "send_funds_to_address_or_ens", {"recipient": BENEFICIARY, "amountInEth": "5"}, chain
    )
    assert "Insufficient Funds" in out


def test_send_to_unknown_name(chain):
    with patch("fundchat.tools.resolve_name", return_value=None):
        out = dispatch_tool(
            "send_funds_to_address_or_ens", {"recipient": "nobody.eth", "amountInEth": "0.1"}, chain
        )
    assert "Name Not Found" in out
    chain.send_value.assert_not_called()


def test_send_name_timeout(chain):
    with patch("fundchat.tools.resolve_name", side_effect=NameResolutionTimeout("slow")):
        out = dispatch_tool(
            "send_funds_to_address_or_ens", {"recipient": "slow.eth", "amountInEth": "0.1"}, chain
        )
    assert "Timed Out" in out
    chain.send_value.assert_not_called()


def test_send_resolves_name(chain, tx_hash):
    chain.send_value.return_value = {"hash": tx_hash, "gas_price": 1, "from": chain.wallet.address}
    chain.wait_for_receipt.return_value = {"status": 1}
    with patch("fundchat.tools.resolve_name", return_value=BENEFICIARY):
        dispatch_tool("send_funds_to_address_or_ens", {"recipient": "vitalik.eth", "amountInEth": "0.1"}, chain)
    chain.send_value.assert_called_once_with(BENEFICIARY, 10**17)


def test_deploy_success_includes_qr(chain, tx_hash):
    chain.deploy_fundraiser.return_value = {"hash": tx_hash, "gas_price": 1, "from": chain.wallet.address}
    chain.wait_for_receipt.return_value = {"status": 1, "contractAddress": DEPLOYED}
    out = dispatch_tool(
        "deploy_fundraiser_contract",
        {
            "beneficiaryAddress": BENEFICIARY,
            "goalAmount": "1",
            "fundraiserName": "Web3 Ladies",
            "originalUserInput": "Create a fundraiser for 2 ETH for Web3 Ladies",
        },
        chain,
    )
    chain.deploy_fundraiser.assert_called_once_with(BENEFICIARY, 2 * 10**18, 2592000)
    parsed = parse_hybrid_payload(out)
    assert parsed.classification == QR_RESPONSE
    assert DEPLOYED in parsed.text
    assert "Goal: 2 ETH" in parsed.text
    assert "0.1 ETH" in parsed.qr_message


def test_deploy_pending(chain, tx_hash):
    chain.deploy_fundraiser.return_value = {"hash": tx_hash, "gas_price": 1, "from": chain.wallet.address}
    chain.wait_for_receipt.side_effect = ConfirmationTimeout(tx_hash, 60)
    out = dispatch_tool("deploy_fundraiser_contract", {"beneficiaryAddress": BENEFICIARY, "goalAmount": "1"}, chain)
    assert "Deployment In Progress" in out
    assert tx_hash in out


def test_deploy_reverted(chain, tx_hash):
    chain.deploy_fundraiser.return_value = {"hash": tx_hash, "gas_price": 1, "from": chain.wallet.address}
    chain.wait_for_receipt.return_value = {"status": 0, "contractAddress": None}
    out = dispatch_tool("deploy_fundraiser_contract", {"beneficiaryAddress": BENEFICIARY, "goalAmount": "1"}, chain)
    assert "Contract Deployment Failed" in out
    assert "reverted" in out


def test_deploy_qr_failure_keeps_confirmation(chain, tx_hash):
    from fundchat.formatting import QRCodeError

    chain.deploy_fundraiser.return_value = {"hash": tx_hash, "gas_price": 1, "from": chain.wallet.address}
    chain.wait_for_receipt.return_value = {"status": 1, "contractAddress": DEPLOYED}
    with patch("fundchat.tools.generate_contribution_qr", side_effect=QRCodeError("boom")):
        out = dispatch_tool(
            "deploy_fundraiser_contract", {"beneficiaryAddress": BENEFICIARY, "goalAmount": "1"}, chain
        )
    assert "is Live!" in out
    assert DEPLOYED in out
    assert "QR Code generation failed" in out


def test_deploy_usd_goal_uses_live_price(chain, tx_hash):
    chain.deploy_fundraiser.return_value = {"hash": tx_hash, "gas_price": 1, "from": chain.wallet.address}
    chain.wait_for_receipt.side_effect = ConfirmationTimeout(tx_hash, 60)
    with patch("fundchat.prices.fetch_eth_usd", return_value={"eth_usd": 2500.0, "source": "test"}):
        dispatch_tool(
            "deploy_fundraiser_contract",
            {"beneficiaryAddress": BENEFICIARY, "goalAmount": "100 USDC worth of ETH"},
            chain,
        )
    chain.deploy_fundraiser.assert_called_once_with(BENEFICIARY, 4 * 10**16, 2592000)


def test_contributors_with_names(chain, contract_address):
    people = ["0x" + "3" * 40, "0x" + "4" * 40]
    with patch("fundchat.tools.get_contributors", return_value=people), patch(
        "fundchat.tools.lookup_address", side_effect=["alice.eth", None]
    ):
        out = dispatch_tool("get_fundraiser_contributors", {"contractAddress": contract_address}, chain)
    assert "alice.eth" in out
    assert "0x4444...4444" in out


def test_status_tool(chain, contract_address):
    with patch("fundchat.tools.is_fundraiser_active", return_value=False):
        out = dispatch_tool("check_fundraiser_status", {"contractAddress": contract_address}, chain)
    assert "Ended" in out


def test_balance_defaults_to_agent_wallet(chain):
    chain.get_balance.return_value = 5 * 10**17
    out = dispatch_tool("check_wallet_balance", {}, chain)
    chain.get_balance.assert_called_once_with(chain.wallet.address)
    assert "0.5 ETH" in out


def test_wallet_fundraiser_payload(chain):
    chain.get_balance.return_value = 25 * 10**16
    out = dispatch_tool("create_wallet_fundraiser", {"fundraiserName": "Web3 Ladies", "goalAmount": "1"}, chain)
    data = json.loads(out)
    assert data["kind"] == "qr"
    assert "0.25 / 1 ETH (25.0%)" in data["text"]
    assert "name=Web3+Ladies" in data["text"]


@pytest.mark.parametrize("goal,expected", [("1", "0.05"), ("0.001", "0.001"), ("10", "0.1"), ("0.5", "0.025")])
def test_suggested_contribution(goal, expected):
    assert suggested_contribution(goal) == expected
