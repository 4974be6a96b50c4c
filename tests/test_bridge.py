import asyncio
import base64
from unittest.mock import MagicMock, patch

from uagents_core.contrib.protocols.chat import ResourceContent, TextContent

from fundchat.bridge import _png_from_data_url, deliver_reply
from fundchat.payload import qr_wire
from fundchat.storage import qr_asset_name, upload_png_to_storage

SENDER = "agent1qexample"
ASSET_ID = "3f2b8c1e-6a4d-4e8f-9b7a-1c2d3e4f5a6b"
PNG = b"\x89PNG\r\n\x1a\nfake"
WALLET = "0x7805B1557019e15BF3E6903d1bE02c2038da14D2"
QR = "data:image/png;base64," + base64.b64encode(PNG).decode()


class FakeCtx:
    def __init__(self):
        self.sent = []
        self.logger = MagicMock()

    async def send(self, to, msg):
        self.sent.append((to, msg))


def contents(ctx):
    return [m.content[0] for _, m in ctx.sent]


def test_png_from_data_url():
    assert _png_from_data_url(QR) == PNG
    assert _png_from_data_url("https://example.com/qr.png") is None


def test_text_reply_is_sent_as_is():
    ctx = FakeCtx()
    asyncio.run(deliver_reply(ctx, SENDER, "Balance: 1 ETH"))
    [item] = contents(ctx)
    assert isinstance(item, TextContent)
    assert item.text == "Balance: 1 ETH"


def test_qr_reply_uploads_resource():
    ctx = FakeCtx()
    with patch("fundchat.bridge.upload_png_to_storage", return_value=(ASSET_ID, f"agent-storage://x/{ASSET_ID}", None)) as up:
        asyncio.run(deliver_reply(ctx, SENDER, qr_wire("Your QR", QR, "Scan")))
    up.assert_called_once_with(ctx, SENDER, PNG, None)
    text, resource = contents(ctx)
    assert text.text == "Your QR"
    assert isinstance(resource, ResourceContent)
    assert str(resource.resource_id) == ASSET_ID


def test_qr_reply_labels_asset_with_address():
    ctx = FakeCtx()
    with patch("fundchat.bridge.upload_png_to_storage", return_value=(ASSET_ID, "agent-storage://x", None)) as up:
        asyncio.run(deliver_reply(ctx, SENDER, qr_wire("Your QR", QR, f"📱 Scan to Contribute 0.05 ETH to {WALLET}")))
    assert up.call_args.args[3] == WALLET


def test_qr_reply_falls_back_to_text():
    ctx = FakeCtx()
    with patch("fundchat.bridge.upload_png_to_storage", return_value=(None, None, "storage_not_configured")):
        asyncio.run(deliver_reply(ctx, SENDER, qr_wire("Your QR", QR, "📱 Scan to Contribute 0.05 ETH")))
    text, fallback = contents(ctx)
    assert text.text == "Your QR"
    assert "couldn't attach the QR image" in fallback.text
    assert "0.05 ETH" in fallback.text


def test_asset_name_carries_label():
    name = qr_asset_name(WALLET)
    assert name.startswith("qr_0x7805b1557019e15bf3e6903d1be02c2038da14d2_")
    assert name.endswith(".png")
    assert qr_asset_name(None).startswith("qr_")
    assert qr_asset_name("../../etc").startswith("qr_etc_")


def test_upload_uses_label_and_grants_sender():
    ctx = FakeCtx()
    storage = MagicMock(storage_url="https://storage.example")
    storage.create_asset.return_value = ASSET_ID
    with patch("fundchat.storage.external_storage", return_value=storage):
        asset_id, uri, err = upload_png_to_storage(ctx, SENDER, PNG, WALLET)
    assert (asset_id, err) == (ASSET_ID, None)
    assert uri == f"agent-storage://https://storage.example/{ASSET_ID}"
    assert WALLET.lower() in storage.create_asset.call_args.kwargs["name"]
    storage.set_permissions.assert_called_once_with(asset_id=ASSET_ID, agent_address=SENDER)


def test_upload_without_storage():
    ctx = FakeCtx()
    with patch("fundchat.storage.external_storage", return_value=None):
        assert upload_png_to_storage(ctx, SENDER, PNG) == (None, None, "storage_not_configured")
