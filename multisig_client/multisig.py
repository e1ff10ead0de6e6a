from typing import Iterable, List, Optional

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from multisig_client.addresses import group_account_key, proposal_account_key, protected_account_key
from multisig_client.constants import SYS_PROGRAM_ID
from multisig_client.errors import UsageError
from multisig_client.schema import (
    ApproveInstruction,
    CloseProposalInstruction,
    InitInstruction,
    ProposalConfig,
    ProposeInstruction,
    ProposedInstruction,
    encode_instruction,
)


def require(value, name: str):
    if value is None:
        raise UsageError(f"{name} is required")
    return value


def proposed_instructions(ixs: Iterable[Instruction]) -> List[ProposedInstruction]:
    return [ProposedInstruction.from_instruction(ix) for ix in ixs]


def make_proposal_config(
    group: Pubkey,
    author: Pubkey,
    instructions: List[ProposedInstruction],
    salt: int,
) -> ProposalConfig:
    return ProposalConfig(group=group, instructions=list(instructions), author=author, salt=salt)


def _program_id_metas(instructions: List[ProposedInstruction]) -> List[AccountMeta]:
    return [AccountMeta(pubkey=ix.program_id, is_signer=False, is_writable=False) for ix in instructions]


def _nested_account_metas(
    instructions: List[ProposedInstruction],
    exclude: Optional[Pubkey] = None,
) -> List[AccountMeta]:
    # Only the outer signer signs this transaction; nested signers are
    # authorized by the program via invoke_signed.
    return [
        AccountMeta(pubkey=meta.pubkey, is_signer=False, is_writable=meta.is_writable)
        for ix in instructions
        for meta in ix.accounts
        if exclude is None or meta.pubkey != exclude
    ]


def build_init_ix(program_id: Pubkey, init: InitInstruction, payer: Pubkey) -> Instruction:
    require(program_id, "program_id")
    require(init, "init")
    require(init.group_data, "group_data")
    require(payer, "payer")
    init.group_data.validate()

    group = group_account_key(program_id, init.group_data)
    protected = protected_account_key(program_id, group)
    accounts = [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=group, is_signer=False, is_writable=True),
        AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=protected, is_signer=False, is_writable=True),
    ]
    return Instruction(program_id=program_id, data=encode_instruction(init), accounts=accounts)


def build_propose_ix(
    program_id: Pubkey,
    propose: ProposeInstruction,
    group: Pubkey,
    author: Pubkey,
) -> Instruction:
    require(program_id, "program_id")
    require(propose, "propose")
    require(group, "group")
    require(author, "author")

    config = make_proposal_config(group, author, propose.instructions, propose.salt)
    proposal = proposal_account_key(program_id, config)
    accounts: List[AccountMeta] = [
        AccountMeta(pubkey=author, is_signer=True, is_writable=True),
        AccountMeta(pubkey=group, is_signer=False, is_writable=True),
        AccountMeta(pubkey=proposal, is_signer=False, is_writable=True),
        AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    accounts.extend(_program_id_metas(propose.instructions))
    accounts.extend(_nested_account_metas(propose.instructions))
    return Instruction(program_id=program_id, data=encode_instruction(propose), accounts=accounts)


def build_approve_ix(
    program_id: Pubkey,
    proposal: Pubkey,
    config: ProposalConfig,
    signer: Pubkey,
) -> Instruction:
    require(program_id, "program_id")
    require(proposal, "proposal")
    require(config, "config")
    require(signer, "signer")

    group = config.group
    protected = protected_account_key(program_id, group)
    accounts: List[AccountMeta] = [
        AccountMeta(pubkey=signer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=group, is_signer=False, is_writable=True),
        AccountMeta(pubkey=proposal, is_signer=False, is_writable=True),
        AccountMeta(pubkey=protected, is_signer=False, is_writable=True),
    ]
    accounts.extend(_program_id_metas(config.instructions))
    # The protected account is already at index 3.
    accounts.extend(_nested_account_metas(config.instructions, exclude=protected))
    return Instruction(program_id=program_id, data=encode_instruction(ApproveInstruction()), accounts=accounts)


def build_close_proposal_ix(
    program_id: Pubkey,
    proposal: Pubkey,
    signer: Pubkey,
    destination: Pubkey,
) -> Instruction:
    require(program_id, "program_id")
    require(proposal, "proposal")
    require(signer, "signer")
    require(destination, "destination")
    accounts = [
        AccountMeta(pubkey=signer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=proposal, is_signer=False, is_writable=True),
        AccountMeta(pubkey=destination, is_signer=False, is_writable=True),
    ]
    return Instruction(
        program_id=program_id,
        data=encode_instruction(CloseProposalInstruction()),
        accounts=accounts,
    )
