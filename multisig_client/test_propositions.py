import pytest
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID

from multisig_client.addresses import program_data_key
from multisig_client.constants import BPF_LOADER_UPGRADEABLE_ID, SYS_PROGRAM_ID
from multisig_client.errors import UnsupportedPropositionError
from multisig_client.propositions import (
    Create,
    CreateTokenAccount,
    DelegateMintAuthority,
    DelegateTokenAuthority,
    DelegateUpgradeAuthority,
    MintTo,
    PropositionKind,
    Transfer,
    TransferToken,
    Upgrade,
    UpgradeMultisig,
    resolve_proposition,
    token_account_address,
)
from multisig_client.stubs import key

PROTECTED = key(100)
MULTISIG = key(101)


def _resolve(proposition):
    return resolve_proposition(proposition, PROTECTED, MULTISIG)


def _keys(ix):
    return [meta.pubkey for meta in ix.accounts]


def test_create_is_paid_by_final_approver():
    (ix,) = _resolve(Create(lamports=500, final_approver=key(1)))
    assert ix.program_id == SYS_PROGRAM_ID
    assert _keys(ix) == [key(1), PROTECTED]


def test_transfer_from_protected():
    (ix,) = _resolve(Transfer(destination=key(2), amount=10))
    assert ix.program_id == SYS_PROGRAM_ID
    assert _keys(ix) == [PROTECTED, key(2)]
    assert ix.accounts[0].is_signer


def test_upgrade_uses_protected_as_spill_and_authority():
    (ix,) = _resolve(Upgrade(buffer=key(3), program=key(4)))
    assert ix.program_id == BPF_LOADER_UPGRADEABLE_ID
    assert _keys(ix)[:4] == [program_data_key(key(4)), key(4), key(3), PROTECTED]
    assert _keys(ix)[-1] == PROTECTED
    assert bytes(ix.data) == (3).to_bytes(4, "little")


def test_upgrade_multisig_targets_multisig_program():
    (ix,) = _resolve(UpgradeMultisig(buffer=key(3)))
    assert _keys(ix)[1] == MULTISIG


def test_delegate_upgrade_authority():
    (ix,) = _resolve(DelegateUpgradeAuthority(target=key(5), new_authority=key(6)))
    assert _keys(ix) == [program_data_key(key(5)), PROTECTED, key(6)]
    assert bytes(ix.data) == (4).to_bytes(4, "little")


@pytest.mark.parametrize(
    "proposition, authority_type",
    [
        (DelegateMintAuthority(target=key(7), new_authority=key(8)), 0),
        (DelegateTokenAuthority(target=key(7), new_authority=key(8)), 2),
    ],
)
def test_delegate_token_authorities(proposition, authority_type):
    (ix,) = _resolve(proposition)
    assert ix.program_id == TOKEN_PROGRAM_ID
    assert _keys(ix) == [key(7), PROTECTED]
    assert bytes(ix.data)[1] == authority_type


def test_mint_to_with_protected_authority():
    (ix,) = _resolve(MintTo(mint=key(9), destination=key(10), amount=3))
    assert ix.program_id == TOKEN_PROGRAM_ID
    assert _keys(ix) == [key(9), key(10), PROTECTED]


def test_create_token_account():
    create, init = _resolve(CreateTokenAccount(mint=key(11), seed="vault", lamports=2039280))
    account = token_account_address(PROTECTED, "vault")
    assert account == Pubkey.create_with_seed(PROTECTED, "vault", TOKEN_PROGRAM_ID)
    assert create.program_id == SYS_PROGRAM_ID
    assert _keys(create)[:2] == [PROTECTED, account]
    assert init.program_id == TOKEN_PROGRAM_ID
    assert _keys(init)[:3] == [account, key(11), PROTECTED]


def test_transfer_token():
    (ix,) = _resolve(TransferToken(source=key(12), destination=key(13), amount=1))
    assert ix.program_id == TOKEN_PROGRAM_ID
    assert _keys(ix) == [key(12), key(13), PROTECTED]


def test_every_kind_has_a_proposition():
    kinds = {
        cls.kind
        for cls in (
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
        )
    }
    assert kinds == set(PropositionKind)


def test_unsupported_proposition():
    with pytest.raises(UnsupportedPropositionError):
        _resolve(object())
