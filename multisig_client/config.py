from typing import Optional

from pydantic_settings import BaseSettings
from solders.pubkey import Pubkey

from multisig_client.errors import UsageError


def load_pubkey(value: Optional[str], name: str) -> Pubkey:
    if not value:
        raise UsageError(f"{name} must be set to a valid pubkey")
    try:
        return Pubkey.from_string(value)
    except Exception as exc:  # noqa: BLE001
        raise UsageError(f"{name} is not a valid pubkey: {exc}") from exc


class Settings(BaseSettings):
    solana_rpc: str = "https://api.devnet.solana.com"
    helius_rpc_url: str = ""
    program_id: Optional[str] = None
    commitment: str = "confirmed"
    loader_async: bool = False  # default delivery mode for program uploads

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def rpc_url(self) -> str:
        # Prefer Helius RPC if provided.
        return self.helius_rpc_url or self.solana_rpc

    def program_pubkey(self) -> Pubkey:
        return load_pubkey(self.program_id, "PROGRAM_ID")
