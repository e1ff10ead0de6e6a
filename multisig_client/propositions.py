"""High-level actions a group can vote on.

Each proposition resolves to the concrete instructions that the protected
account will sign once the proposal reaches its threshold.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Union

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import (
    CreateAccountParams,
    CreateAccountWithSeedParams,
    TransferParams as SystemTransferParams,
    create_account,
    create_account_with_seed,
    transfer as system_transfer,
)
from spl.token._layouts import ACCOUNT_LAYOUT
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    AuthorityType,
    InitializeAccountParams,
    MintToParams,
    SetAuthorityParams,
    TransferParams,
    initialize_account,
    mint_to,
    set_authority,
    transfer,
)

from multisig_client.constants import SYS_PROGRAM_ID
from multisig_client.errors import UnsupportedPropositionError
from multisig_client.loader import build_set_authority_ix, build_upgrade_ix


class PropositionKind(Enum):
    CREATE = "create"
    TRANSFER = "transfer"
    UPGRADE = "upgrade"
    UPGRADE_MULTISIG = "upgrade-multisig"
    DELEGATE_UPGRADE_AUTHORITY = "delegate-upgrade-authority"
    DELEGATE_MINT_AUTHORITY = "delegate-mint-authority"
    DELEGATE_TOKEN_AUTHORITY = "delegate-token-authority"
    MINT_TO = "mint-to"
    CREATE_TOKEN_ACCOUNT = "create-token-account"
    TRANSFER_TOKEN = "transfer-token"


@dataclass(frozen=True)
class Create:
    """Fund the protected account; the final approver pays."""

    lamports: int
    final_approver: Pubkey
    kind = PropositionKind.CREATE


@dataclass(frozen=True)
class Transfer:
    destination: Pubkey
    amount: int
    kind = PropositionKind.TRANSFER


@dataclass(frozen=True)
class Upgrade:
    buffer: Pubkey
    program: Pubkey
    kind = PropositionKind.UPGRADE


@dataclass(frozen=True)
class UpgradeMultisig:
    buffer: Pubkey
    kind = PropositionKind.UPGRADE_MULTISIG


@dataclass(frozen=True)
class DelegateUpgradeAuthority:
    target: Pubkey
    new_authority: Pubkey
    kind = PropositionKind.DELEGATE_UPGRADE_AUTHORITY


@dataclass(frozen=True)
class DelegateMintAuthority:
    target: Pubkey
    new_authority: Pubkey
    kind = PropositionKind.DELEGATE_MINT_AUTHORITY


@dataclass(frozen=True)
class DelegateTokenAuthority:
    target: Pubkey
    new_authority: Pubkey
    kind = PropositionKind.DELEGATE_TOKEN_AUTHORITY


@dataclass(frozen=True)
class MintTo:
    mint: Pubkey
    destination: Pubkey
    amount: int
    kind = PropositionKind.MINT_TO


@dataclass(frozen=True)
class CreateTokenAccount:
    """Create a token account at ``create_with_seed(protected, seed)``.

    ``lamports`` is the rent-exempt minimum for a token account; the
    protected account pays it.
    """

    mint: Pubkey
    seed: str
    lamports: int
    kind = PropositionKind.CREATE_TOKEN_ACCOUNT


@dataclass(frozen=True)
class TransferToken:
    source: Pubkey
    destination: Pubkey
    amount: int
    kind = PropositionKind.TRANSFER_TOKEN


Proposition = Union[
    Create,
    Transfer,
    Upgrade,
    UpgradeMultisig,
    DelegateUpgradeAuthority,
    DelegateMintAuthority,
    DelegateTokenAuthority,
    MintTo,
    CreateTokenAccount,
    TransferToken,
]


def token_account_address(protected: Pubkey, seed: str) -> Pubkey:
    return Pubkey.create_with_seed(protected, seed, TOKEN_PROGRAM_ID)


def _create_token_account_ixs(protected: Pubkey, proposition: CreateTokenAccount) -> List[Instruction]:
    account = token_account_address(protected, proposition.seed)
    create = create_account_with_seed(
        CreateAccountWithSeedParams(
            from_pubkey=protected,
            to_pubkey=account,
            base=protected,
            seed=proposition.seed,
            lamports=proposition.lamports,
            space=ACCOUNT_LAYOUT.sizeof(),
            owner=TOKEN_PROGRAM_ID,
        )
    )
    init = initialize_account(
        InitializeAccountParams(
            program_id=TOKEN_PROGRAM_ID,
            account=account,
            mint=proposition.mint,
            owner=protected,
        )
    )
    return [create, init]


def resolve_proposition(
    proposition: Proposition,
    protected: Pubkey,
    multisig_program_id: Pubkey,
) -> List[Instruction]:
    if isinstance(proposition, Create):
        return [
            create_account(
                CreateAccountParams(
                    from_pubkey=proposition.final_approver,
                    to_pubkey=protected,
                    lamports=proposition.lamports,
                    space=0,
                    owner=SYS_PROGRAM_ID,
                )
            )
        ]
    if isinstance(proposition, Transfer):
        return [
            system_transfer(
                SystemTransferParams(
                    from_pubkey=protected,
                    to_pubkey=proposition.destination,
                    lamports=proposition.amount,
                )
            )
        ]
    if isinstance(proposition, Upgrade):
        return [build_upgrade_ix(proposition.program, proposition.buffer, protected, protected)]
    if isinstance(proposition, UpgradeMultisig):
        return [build_upgrade_ix(multisig_program_id, proposition.buffer, protected, protected)]
    if isinstance(proposition, DelegateUpgradeAuthority):
        return [build_set_authority_ix(proposition.target, protected, proposition.new_authority)]
    if isinstance(proposition, (DelegateMintAuthority, DelegateTokenAuthority)):
        authority_type = (
            AuthorityType.MINT_TOKENS
            if isinstance(proposition, DelegateMintAuthority)
            else AuthorityType.ACCOUNT_OWNER
        )
        return [
            set_authority(
                SetAuthorityParams(
                    program_id=TOKEN_PROGRAM_ID,
                    account=proposition.target,
                    authority=authority_type,
                    current_authority=protected,
                    new_authority=proposition.new_authority,
                    signers=[],
                )
            )
        ]
    if isinstance(proposition, MintTo):
        return [
            mint_to(
                MintToParams(
                    program_id=TOKEN_PROGRAM_ID,
                    mint=proposition.mint,
                    dest=proposition.destination,
                    mint_authority=protected,
                    amount=proposition.amount,
                    signers=[],
                )
            )
        ]
    if isinstance(proposition, CreateTokenAccount):
        return _create_token_account_ixs(protected, proposition)
    if isinstance(proposition, TransferToken):
        return [
            transfer(
                TransferParams(
                    program_id=TOKEN_PROGRAM_ID,
                    source=proposition.source,
                    dest=proposition.destination,
                    owner=protected,
                    amount=proposition.amount,
                    signers=[],
                )
            )
        ]
    raise UnsupportedPropositionError(f"unsupported proposition: {proposition!r}")
