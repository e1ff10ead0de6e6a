"""Readers for accounts owned by the multisig program.

Account data is a one-byte type tag followed by the borsh body. A proposal that
was executed or closed is left zeroed by the program, so an all-zero buffer
means "gone", never a proposal with zero weight.
"""

import base64
from typing import Any

from solana.rpc.types import MemcmpOpts
from solders.pubkey import Pubkey

from multisig_client.constants import ACCOUNT_TYPE_GROUP, ACCOUNT_TYPE_PROPOSAL
from multisig_client.errors import (
    AccountClosedError,
    EmptyAccountDataError,
    InvalidAccountOwnerError,
    InvalidAccountTypeError,
)
from multisig_client.schema import GroupData, ProposalData, deserialize


def account_data_bytes(data: Any) -> bytes:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    # handle (data, encoding) tuple/list shape
    if isinstance(data, (list, tuple)):
        raw = data[0] if data else b""
        return base64.b64decode(raw) if not isinstance(raw, (bytes, bytearray)) else bytes(raw)
    if isinstance(data, str):
        return base64.b64decode(data)
    return bytes(data)


def check_account_owner(info: Any, program_id: Pubkey) -> None:
    if info.owner != program_id:
        raise InvalidAccountOwnerError(f"invalid account owner: {info.owner} (expected {program_id})")


def check_account_type(data: bytes, expected: int) -> None:
    if len(data) == 0:
        raise EmptyAccountDataError("account data is empty")
    if data[0] != expected:
        raise InvalidAccountTypeError(f"invalid account type: {data[0]} (expected {expected})")


def is_zeroed(data: bytes) -> bool:
    return not any(data)


def read_verified_group_data(data: bytes) -> GroupData:
    return deserialize(GroupData, data[1:])


def read_verified_proposal_data(data: bytes) -> ProposalData:
    return deserialize(ProposalData, data[1:])


def read_group_account(info: Any, program_id: Pubkey) -> GroupData:
    check_account_owner(info, program_id)
    data = account_data_bytes(info.data)
    check_account_type(data, ACCOUNT_TYPE_GROUP)
    return read_verified_group_data(data)


def read_proposal_account(info: Any, program_id: Pubkey) -> ProposalData:
    check_account_owner(info, program_id)
    data = account_data_bytes(info.data)
    if is_zeroed(data):
        raise AccountClosedError("data is zero (proposal may be complete)")
    check_account_type(data, ACCOUNT_TYPE_PROPOSAL)
    return read_verified_proposal_data(data)


def group_filter() -> MemcmpOpts:
    return MemcmpOpts(offset=0, bytes=bytes([ACCOUNT_TYPE_GROUP]))


def proposal_filter(group_key: Pubkey) -> MemcmpOpts:
    return MemcmpOpts(offset=0, bytes=bytes([ACCOUNT_TYPE_PROPOSAL]) + bytes(group_key))
