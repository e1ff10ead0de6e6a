import pytest

from multisig_client.config import Settings, load_pubkey
from multisig_client.errors import UsageError
from multisig_client.stubs import key


def test_defaults(monkeypatch):
    monkeypatch.delenv("PROGRAM_ID", raising=False)
    monkeypatch.delenv("HELIUS_RPC_URL", raising=False)
    monkeypatch.delenv("SOLANA_RPC", raising=False)
    settings = Settings(_env_file=None)
    assert settings.rpc_url() == "https://api.devnet.solana.com"
    assert settings.commitment == "confirmed"
    assert settings.loader_async is False
    with pytest.raises(UsageError, match="PROGRAM_ID"):
        settings.program_pubkey()


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("PROGRAM_ID", str(key(7)))
    monkeypatch.setenv("HELIUS_RPC_URL", "https://rpc.example")
    monkeypatch.setenv("LOADER_ASYNC", "true")
    settings = Settings(_env_file=None)
    assert settings.rpc_url() == "https://rpc.example"
    assert settings.program_pubkey() == key(7)
    assert settings.loader_async is True


def test_load_pubkey_rejects_garbage():
    with pytest.raises(UsageError, match="BUFFER"):
        load_pubkey("not-a-key", "BUFFER")
    with pytest.raises(UsageError):
        load_pubkey("", "BUFFER")
