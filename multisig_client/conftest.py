from typing import List

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from multisig_client.schema import GroupData, GroupMember
from multisig_client.stubs import key


@pytest.fixture
def program_id() -> Pubkey:
    return key(200)


@pytest.fixture
def members() -> List[Keypair]:
    return [Keypair() for _ in range(3)]


@pytest.fixture
def group_data(members) -> GroupData:
    return GroupData(
        members=[GroupMember(public_key=kp.pubkey(), weight=w) for kp, w in zip(members, (1, 2, 3))],
        threshold=4,
    )
