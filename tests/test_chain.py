import os
import threading
import time
from unittest.mock import patch

import pytest

from fundchat.chain import ChainContext, ConfirmationTimeout
from fundchat.contracts import ArtifactError
from fundchat.wallet import WalletHandle, load_or_create_wallet, wallet_path

KEY = "0x" + "11" * 32
RECIPIENT = "0x7805B1557019e15BF3E6903d1bE02c2038da14D2"
TX = "0x" + "ab" * 32


@pytest.fixture
def ctx():
    return ChainContext(private_key=KEY)


def test_wait_for_receipt_times_out(ctx):
    with patch("fundchat.chain.get_receipt", return_value=None):
        with pytest.raises(ConfirmationTimeout) as exc:
            ctx.wait_for_receipt(TX, timeout=0)
    assert exc.value.tx_hash == TX


def test_wait_for_receipt_polls_until_mined(ctx):
    receipts = [None, None, {"status": 1}]
    with patch("fundchat.chain.get_receipt", side_effect=receipts) as rc, patch("fundchat.chain.time.sleep"):
        assert ctx.wait_for_receipt(TX, timeout=60) == {"status": 1}
    assert rc.call_count == 3


def test_init_requires_key():
    with patch("fundchat.chain.WALLET_KEY", None), patch("fundchat.chain.ENCRYPTION_KEY", None):
        with pytest.raises(RuntimeError, match="WALLET_KEY"):
            ChainContext().init()


def test_init_falls_back_to_persisted_wallet(tmp_path):
    wallet_dir = str(tmp_path / "wallets")
    missing = str(tmp_path / "missing.json")
    with patch("fundchat.chain.WALLET_KEY", None), patch("fundchat.chain.ENCRYPTION_KEY", "pw"):
        first = ChainContext(artifact_path=missing, wallet_user_id="agent", wallet_dir=wallet_dir).init()
        second = ChainContext(artifact_path=missing, wallet_user_id="agent", wallet_dir=wallet_dir).init()
    assert first.ready and second.ready
    assert first.wallet.address == second.wallet.address
    assert os.path.exists(wallet_path("agent", wallet_dir))


def test_init_without_artifact_disables_deploys(ctx, tmp_path):
    ctx.artifact_path = str(tmp_path / "missing.json")
    ctx.init()
    assert ctx.ready
    assert ctx.factory is None
    with pytest.raises(ArtifactError, match="not found"):
        ctx.deploy_fundraiser(RECIPIENT, 10**18, 60)


def test_wallet_send_uses_pending_nonce():
    wallet = WalletHandle(KEY, 84532, "http://rpc.invalid")
    with patch("fundchat.wallet.get_nonce", return_value=3) as nonce, patch(
        "fundchat.wallet.send_raw_tx", return_value=TX
    ) as send:
        out = wallet.send_transaction({"to": RECIPIENT.lower(), "value": 1, "gas": 21000, "gasPrice": 10})
    assert out == TX
    nonce.assert_called_once_with(wallet.address, url="http://rpc.invalid")
    raw = send.call_args.args[0]
    assert raw.startswith("0x") and len(raw) > 100


def test_load_or_create_wallet_is_stable(tmp_path):
    wallet_dir = str(tmp_path / "wallets")
    first = load_or_create_wallet("user:1", 84532, passphrase="pw", wallet_dir=wallet_dir)
    path = wallet_path("user:1", wallet_dir)
    with open(path, encoding="utf-8") as f:
        before = f.read()
    second = load_or_create_wallet("user:1", 84532, passphrase="pw", wallet_dir=wallet_dir)
    with open(path, encoding="utf-8") as f:
        after = f.read()
    assert first.address == second.address
    assert before == after
    assert os.path.basename(path) == "user_1.json"


def test_load_or_create_wallet_needs_passphrase(tmp_path):
    with patch("fundchat.wallet.ENCRYPTION_KEY", None):
        with pytest.raises(RuntimeError, match="ENCRYPTION_KEY"):
            load_or_create_wallet("u", 84532, passphrase=None, wallet_dir=str(tmp_path))


def test_concurrent_sends_do_not_share_a_nonce():
    wallet = WalletHandle(KEY, 84532, "http://rpc.invalid")
    events = []
    sent = []

    def fake_nonce(address, url=None):
        nonce = len(sent)
        events.append(("nonce", nonce))
        time.sleep(0.05)
        return nonce

    def fake_send(raw, url=None):
        sent.append(raw)
        events.append(("send", raw))
        return "0x" + f"{len(sent):064x}"

    tx = {"to": RECIPIENT.lower(), "value": 1, "gas": 21000, "gasPrice": 10}
    with patch("fundchat.wallet.get_nonce", side_effect=fake_nonce), patch(
        "fundchat.wallet.send_raw_tx", side_effect=fake_send
    ):
        threads = [threading.Thread(target=wallet.send_transaction, args=(tx,)) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    assert [kind for kind, _ in events] == ["nonce", "send", "nonce", "send"]
    nonces = [value for kind, value in events if kind == "nonce"]
    assert nonces == [0, 1]
    assert sent[0] != sent[1]
