"""Recording stand-ins for the RPC clients, shared by the test modules."""

from types import SimpleNamespace
from typing import Dict, List, Optional

from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import Transaction


def key(n: int) -> Pubkey:
    return Pubkey(bytes([n]) * 32)


def _status(err=None):
    return SimpleNamespace(value=[SimpleNamespace(err=err)])


class StubClient:
    """Records what a solana.rpc.api.Client would have been asked to do."""

    def __init__(self, rent: int = 5000) -> None:
        self.rent = rent
        self.accounts: Dict[Pubkey, SimpleNamespace] = {}
        self.program_accounts: List[SimpleNamespace] = []
        self.sent: List[Transaction] = []
        self.rent_requests: List[int] = []
        self.filters: List[list] = []
        self.errors: Dict[int, object] = {}

    def add_account(self, pubkey: Pubkey, owner: Pubkey, data: bytes) -> None:
        info = SimpleNamespace(owner=owner, data=data)
        self.accounts[pubkey] = info
        self.program_accounts.append(SimpleNamespace(pubkey=pubkey, account=info))

    def get_account_info(self, pubkey, commitment=None):
        return SimpleNamespace(value=self.accounts.get(pubkey))

    def get_program_accounts(self, program_id, commitment=None, encoding=None, filters=None):
        self.filters.append(filters)
        return SimpleNamespace(value=list(self.program_accounts))

    def get_minimum_balance_for_rent_exemption(self, space, commitment=None):
        self.rent_requests.append(space)
        return SimpleNamespace(value=self.rent)

    def get_latest_blockhash(self, commitment=None):
        return SimpleNamespace(value=SimpleNamespace(blockhash=Hash.default()))

    def send_raw_transaction(self, txn, opts=None):
        tx = Transaction.from_bytes(txn)
        self.sent.append(tx)
        return SimpleNamespace(value=tx.signatures[0])

    def confirm_transaction(self, signature, commitment=None):
        return _status(self.errors.get(len(self.sent) - 1))


class StubAsyncClient:
    """Async counterpart used by the loader; keeps an ordered event log."""

    def __init__(self, fail_send_index: Optional[int] = None) -> None:
        self.fail_send_index = fail_send_index
        self.sent: List[Transaction] = []
        self.events: List[tuple] = []
        self._index_by_signature: Dict[object, int] = {}

    async def get_minimum_balance_for_rent_exemption(self, space, commitment=None):
        return SimpleNamespace(value=1000 + space)

    async def get_latest_blockhash(self, commitment=None):
        return SimpleNamespace(value=SimpleNamespace(blockhash=Hash.default()))

    async def send_raw_transaction(self, txn, opts=None):
        tx = Transaction.from_bytes(txn)
        signature = tx.signatures[0]
        self._index_by_signature[signature] = len(self.sent)
        self.sent.append(tx)
        self.events.append(("send", signature))
        return SimpleNamespace(value=signature)

    async def confirm_transaction(self, signature, commitment=None):
        self.events.append(("confirm", signature))
        if self._index_by_signature.get(signature) == self.fail_send_index:
            return _status({"InstructionError": [0, "Custom"]})
        return _status()
