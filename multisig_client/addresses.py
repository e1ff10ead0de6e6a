import hashlib
from typing import Tuple

from solders.pubkey import Pubkey

from multisig_client.constants import (
    BPF_LOADER_UPGRADEABLE_ID,
    PDA_TAG_GROUP,
    PDA_TAG_PROPOSAL,
    PDA_TAG_PROTECTED,
)
from multisig_client.schema import GroupData, ProposalConfig, ProposalData, ProposalState, serialize


def content_hash(value) -> bytes:
    return hashlib.sha256(serialize(value)).digest()


def group_account_key_with_bump(program_id: Pubkey, group_data: GroupData) -> Tuple[Pubkey, int]:
    return Pubkey.find_program_address([PDA_TAG_GROUP, content_hash(group_data)], program_id)


def group_account_key(program_id: Pubkey, group_data: GroupData) -> Pubkey:
    return group_account_key_with_bump(program_id, group_data)[0]


def protected_account_key_with_bump(program_id: Pubkey, group_key: Pubkey) -> Tuple[Pubkey, int]:
    return Pubkey.find_program_address([PDA_TAG_PROTECTED, bytes(group_key)], program_id)


def protected_account_key(program_id: Pubkey, group_key: Pubkey) -> Pubkey:
    return protected_account_key_with_bump(program_id, group_key)[0]


def proposal_account_key_with_bump(program_id: Pubkey, config: ProposalConfig) -> Tuple[Pubkey, int]:
    return Pubkey.find_program_address([PDA_TAG_PROPOSAL, content_hash(config)], program_id)


def proposal_account_key(program_id: Pubkey, config: ProposalConfig) -> Pubkey:
    return proposal_account_key_with_bump(program_id, config)[0]


def program_data_key(program: Pubkey) -> Pubkey:
    return Pubkey.find_program_address([bytes(program)], BPF_LOADER_UPGRADEABLE_ID)[0]


def group_account_space(group_data: GroupData) -> int:
    # tag byte + borsh body
    return len(serialize(group_data)) + 1


def proposal_account_space(config: ProposalConfig) -> int:
    mock = ProposalData(config=config, state=ProposalState(members=1, current_weight=1))
    return len(serialize(mock)) + 4 + 1
