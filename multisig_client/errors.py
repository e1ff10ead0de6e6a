"""Exceptions raised by the multisig client.

Callers can tell "not found" (AccountClosedError, AccountNotFoundError) from
"corrupted" (plain DecodeError) from "wrong account" (owner/type mismatch) by
catching the subclasses; catching DecodeError covers all of them.
"""


class MultisigClientError(Exception):
    pass


class UsageError(MultisigClientError, ValueError):
    """Missing or invalid caller input."""


class DecodeError(MultisigClientError):
    """Bytes could not be decoded into the requested value."""


class InvalidAccountOwnerError(DecodeError):
    pass


class InvalidAccountTypeError(DecodeError):
    pass


class EmptyAccountDataError(DecodeError):
    pass


class AccountClosedError(DecodeError):
    """Account data is all zeroes: the proposal was executed or closed."""


class AccountNotFoundError(DecodeError):
    pass


class ProtocolError(MultisigClientError):
    pass


class UnknownInstructionError(ProtocolError):
    pass


class UnsupportedPropositionError(ProtocolError):
    pass


class TransactionFailedError(MultisigClientError):
    def __init__(self, signature: str, err: object) -> None:
        super().__init__(f"transaction {signature} failed: {err}")
        self.signature = signature
        self.err = err
