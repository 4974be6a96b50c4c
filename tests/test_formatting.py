import json

import pytest

from fundchat.formatting import (
    PNG_DATA_URL_PREFIX,
    classify_error,
    format_agent_error,
    format_contributors,
    format_deploy_error,
    format_deploy_response,
    format_transaction_response,
    generate_contract_qr,
    generate_contribution_qr,
)

CONTRACT = "0x" + "1" * 36 + "aaaa"
TX = "0x" + "ab" * 32
FAKE_QR = {"message": "📱 Scan to Contribute 0.05 ETH", "qrCode": PNG_DATA_URL_PREFIX + "AAAA"}


def test_contribution_qr_for_valid_address():
    qr = generate_contribution_qr(CONTRACT, "0.05", "Web3 Ladies")
    assert isinstance(qr, dict)
    assert qr["qrCode"].startswith("data:image/png;base64,")
    assert "0.05 ETH" in qr["message"]
    assert "0x1111...aaaa" in qr["message"]
    assert "Web3 Ladies" in qr["message"]


@pytest.mark.parametrize(
    "address",
    [
        "not-an-address",
        "",
        "0x123",
        "1111111111111111111111111111111111111111",
        "0x" + "g" * 40,
        "0x" + "1" * 41,
        "0x" + "1" * 38,
    ],
)
def test_contribution_qr_rejects_invalid_address(address):
    out = generate_contribution_qr(address, "0.05", "Fundraiser")
    assert isinstance(out, str)
    assert "Invalid Address" in out


def test_contribution_qr_rejects_bad_amount():
    out = generate_contribution_qr(CONTRACT, "lots", "Fundraiser")
    assert isinstance(out, str)
    assert "Invalid Amount" in out


def test_contract_qr_uri_message():
    qr = generate_contract_qr(CONTRACT, function_data="0xabcdef", value="1000")
    assert qr["qrCode"].startswith(PNG_DATA_URL_PREFIX)
    assert CONTRACT in qr["message"]


def test_deploy_response_with_qr_object_appends_json():
    out = format_deploy_response(CONTRACT, TX, "Web3 Ladies", "1", FAKE_QR)
    main, _, tail = out.rpartition("\n\n")
    assert CONTRACT in main
    assert json.loads(tail) == FAKE_QR


def test_deploy_response_keeps_json_string_unchanged():
    qr = json.dumps(FAKE_QR)
    out = format_deploy_response(CONTRACT, TX, "Web3 Ladies", "1", qr)
    assert out.endswith("\n\n" + qr)


def test_deploy_response_survives_qr_failure():
    out = format_deploy_response(CONTRACT, TX, "Web3 Ladies", "1", "QR Code generation failed")
    assert "is Live!" in out
    assert CONTRACT in out
    assert "0xabab...abab" in out
    assert out.endswith("QR Code generation failed")


def test_deploy_response_without_qr():
    out = format_deploy_response(CONTRACT, TX, "Web3 Ladies", "1", None)
    assert "is Live!" in out
    assert "{" not in out


def test_transaction_response_details():
    out = format_transaction_response(TX, "Send Funds", {"from": CONTRACT, "value": "0.1", "blockNumber": 7})
    assert "Send Funds Successful" in out
    assert f"/tx/{TX}" in out
    assert "- Block Number: 7" in out
    assert "- Value: 0.1 ETH" in out


def test_transaction_response_invalid_hash():
    assert "Invalid Transaction Hash" in format_transaction_response("0x123", "Send Funds")


def test_contributors_empty():
    assert "No Contributions Yet" in format_contributors(CONTRACT, [])


def test_contributors_uses_name_or_short_address():
    a = "0x" + "3" * 40
    b = "0x" + "4" * 40
    out = format_contributors(CONTRACT, [{"address": a, "name": "alice.eth"}, {"address": b, "name": None}])
    assert "- alice.eth:" in out
    assert "- 0x4444...4444:" in out


@pytest.mark.parametrize(
    "message,kind",
    [
        ("insufficient funds for gas * price + value", "insufficient_funds"),
        ("nonce too low", "nonce"),
        ("Request failed with status 401", "auth"),
        ("invalid address", "invalid_address"),
        ("network timeout calling eth_call", "network"),
        ("something odd", "unknown"),
    ],
)
def test_classify_error(message, kind):
    assert classify_error(message) == kind


def test_error_templates():
    assert "Insufficient Funds" in format_deploy_error("insufficient funds")
    assert "Nonce" in format_deploy_error("nonce too low")
    assert "boom" in format_deploy_error("boom")
    assert "Authentication error" in format_agent_error("LLM HTTP 401: unauthorized")
    assert "weird failure" in format_agent_error("weird failure")
