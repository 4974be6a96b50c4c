import json

import pytest

from fundchat.formatting import format_deploy_response
from fundchat.payload import (
    JSON_MESSAGE,
    MARKDOWN_QR,
    QR_RESPONSE,
    TEXT,
    parse_hybrid_payload,
    qr_wire,
    tokenize,
)

QR = "data:image/png;base64,iVBORw0KGgo="
CONTRACT = "0x" + "1" * 36 + "aaaa"
TX = "0x" + "ab" * 32


def test_double_encoded_qr_parses_like_single():
    raw = json.dumps({"qrCode": QR, "message": "📱 Scan to Contribute 0.05 ETH"})
    once = parse_hybrid_payload(raw)
    twice = parse_hybrid_payload(json.dumps(raw))
    assert once.classification == twice.classification == QR_RESPONSE
    assert once.qr_code == twice.qr_code == QR
    assert once.qr_message == twice.qr_message == "📱 Scan to Contribute 0.05 ETH"


def test_canonical_wire_object():
    parsed = parse_hybrid_payload(qr_wire("Summary", QR, "Scan me", TX))
    assert parsed.classification == QR_RESPONSE
    assert parsed.text == "Summary"
    assert parsed.qr_message == "Scan me"
    assert parsed.to_wire() == {
        "kind": "qr",
        "text": "Summary",
        "qrCode": QR,
        "qrMessage": "Scan me",
        "transactionHash": TX,
    }


def test_legacy_response_shape():
    raw = json.dumps({"response": "Status", "qrCode": "iVBORw0KGgo=", "qrMessage": "Scan"})
    parsed = parse_hybrid_payload(raw)
    assert parsed.classification == QR_RESPONSE
    assert parsed.text == "Status"
    assert parsed.qr_code == QR


def test_json_message_without_qr():
    parsed = parse_hybrid_payload(json.dumps({"message": "hello"}))
    assert parsed.classification == JSON_MESSAGE
    assert parsed.text == "hello"


def test_error_kind_round_trips():
    parsed = parse_hybrid_payload(json.dumps({"kind": "error", "text": "❌ nope"}))
    assert parsed.is_error
    assert parsed.to_wire() == {"kind": "error", "text": "❌ nope"}


def test_deploy_reply_with_trailing_qr():
    reply = format_deploy_response(CONTRACT, TX, "Web3 Ladies", "1", {"message": "Scan", "qrCode": QR})
    parsed = parse_hybrid_payload(reply)
    assert parsed.classification == QR_RESPONSE
    assert CONTRACT in parsed.text
    assert parsed.qr_message == "Scan"
    assert "qrCode" not in parsed.text


def test_markdown_image_qr():
    parsed = parse_hybrid_payload(f"Here is your code\n![QR Code]({QR})")
    assert parsed.classification == MARKDOWN_QR
    assert parsed.text == "Here is your code"
    assert parsed.qr_code == QR


@pytest.mark.parametrize(
    "garbage",
    [
        "",
        "{",
        '{"qrCode": ',
        "null",
        "[1, 2, 3]",
        '"just a string"',
        "{}",
        '{"qrCode": 5, "message": null}',
        "\x00\xff�",
        "![broken](data:image/png;base64,",
        "```json\n{oops}\n```",
        "\n{not json at all",
    ],
)
def test_garbage_degrades_to_text(garbage):
    parsed = parse_hybrid_payload(garbage)
    assert parsed.classification == TEXT
    assert parsed.text == garbage


def test_non_string_input_does_not_raise():
    assert parse_hybrid_payload(None).classification == TEXT
    assert parse_hybrid_payload(42).classification == TEXT


def test_plain_text_extracts_one_address():
    addr = "0x" + "2" * 36 + "bbbb"
    parsed = parse_hybrid_payload(f"I'll send that now. {addr} will receive it.")
    assert parsed.classification == TEXT
    assert parsed.addresses == [addr]
    assert parsed.tx_hashes == []


def test_tx_hash_is_not_an_address_and_fills_transaction_hash():
    parsed = parse_hybrid_payload(f"Done: {TX}")
    assert parsed.tx_hashes == [TX]
    assert parsed.addresses == []
    assert parsed.transaction_hash == TX


def test_tokenize_trims_url_punctuation_and_bold():
    tokens = tokenize("See https://sepolia.basescan.org/tx/abc. and *Details:* now")
    kinds = [(t.kind, t.value) for t in tokens]
    assert ("url", "https://sepolia.basescan.org/tx/abc") in kinds
    assert ("bold", "Details:") in kinds
    assert "".join(t.value for t in tokens if t.kind == "text").startswith("See ")
