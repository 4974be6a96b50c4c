import pytest


@pytest.fixture
def memory_store(tmp_path):
    from fundchat.memory import ChatMemoryStore

    return ChatMemoryStore(memory_dir=str(tmp_path / "memory"))


@pytest.fixture
def contract_address():
    return "0x" + "1" * 36 + "aaaa"


@pytest.fixture
def tx_hash():
    return "0x" + "ab" * 32
