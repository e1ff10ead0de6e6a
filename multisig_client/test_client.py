import pytest
from solders.keypair import Keypair

from multisig_client.addresses import (
    group_account_key,
    group_account_space,
    proposal_account_key,
    protected_account_key,
)
from multisig_client.client import MultisigClient
from multisig_client.config import Settings
from multisig_client.errors import (
    AccountClosedError,
    AccountNotFoundError,
    TransactionFailedError,
    UsageError,
)
from multisig_client.multisig import make_proposal_config, proposed_instructions
from multisig_client.propositions import Transfer, resolve_proposition
from multisig_client.schema import (
    ApproveInstruction,
    GroupData,
    GroupMember,
    InitInstruction,
    ProposalData,
    ProposalState,
    ProposeInstruction,
    decode_instruction,
    serialize,
)
from multisig_client.stubs import StubClient, key


def _sent_payload(tx, index=0):
    compiled = tx.message.instructions[index]
    program = tx.message.account_keys[compiled.program_id_index]
    return program, decode_instruction(bytes(compiled.data))


def test_create_group_takes_rent_from_rpc(program_id, group_data, members):
    stub = StubClient(rent=4242)
    client = MultisigClient(stub, program_id)
    group = client.create_group(members[0], group_data)

    assert group == group_account_key(program_id, group_data)
    assert stub.rent_requests == [group_account_space(group_data)]
    program, payload = _sent_payload(stub.sent[0])
    assert program == program_id
    assert payload == InitInstruction(group_data=group_data, lamports=4242)


def test_create_group_with_explicit_lamports(program_id, group_data, members):
    stub = StubClient()
    MultisigClient(stub, program_id).create_group(members[0], group_data, lamports=1)
    assert stub.rent_requests == []
    assert _sent_payload(stub.sent[0])[1].lamports == 1


def test_propose_resolves_and_derives_proposal(program_id, members):
    stub = StubClient(rent=900)
    client = MultisigClient(stub, program_id)
    group = key(1)
    author = members[0]
    proposition = Transfer(destination=key(2), amount=10)

    proposal = client.propose(author, group, proposition, salt=77)

    proposed = proposed_instructions(
        resolve_proposition(proposition, protected_account_key(program_id, group), program_id)
    )
    config = make_proposal_config(group, author.pubkey(), proposed, 77)
    assert proposal == proposal_account_key(program_id, config)
    _, payload = _sent_payload(stub.sent[0])
    assert payload == ProposeInstruction(instructions=proposed, lamports=900, salt=77)


def test_send_propose_defaults_salt_to_clock(program_id, members, monkeypatch):
    monkeypatch.setattr("multisig_client.client.current_salt", lambda: 123)
    stub = StubClient()
    MultisigClient(stub, program_id).send_propose(members[0], key(1), [])
    assert _sent_payload(stub.sent[0])[1].salt == 123


def _store_proposal(stub, program_id, author):
    config = make_proposal_config(key(1), author, [], 5)
    proposal = proposal_account_key(program_id, config)
    data = ProposalData(config=config, state=ProposalState())
    stub.add_account(proposal, program_id, b"\x02" + serialize(data))
    return proposal


def test_approve_reads_proposal_then_sends(program_id, members):
    stub = StubClient()
    proposal = _store_proposal(stub, program_id, members[0].pubkey())
    MultisigClient(stub, program_id).approve(members[1], proposal)
    program, payload = _sent_payload(stub.sent[0])
    assert program == program_id
    assert payload == ApproveInstruction()


def test_approve_missing_proposal(program_id, members):
    with pytest.raises(AccountNotFoundError):
        MultisigClient(StubClient(), program_id).approve(members[1], key(3))


def test_approve_closed_proposal(program_id, members):
    stub = StubClient()
    stub.add_account(key(3), program_id, bytes(93))
    with pytest.raises(AccountClosedError):
        MultisigClient(stub, program_id).approve(members[1], key(3))
    assert stub.sent == []


def test_close_proposal(program_id, members):
    stub = StubClient()
    proposal = _store_proposal(stub, program_id, members[0].pubkey())
    MultisigClient(stub, program_id).close_proposal(members[0], proposal, key(9))
    assert bytes(stub.sent[0].message.instructions[0].data) == b"\x03"


def test_failed_transaction(program_id, group_data, members):
    stub = StubClient()
    stub.errors[0] = {"InstructionError": [0, {"Custom": 1}]}
    with pytest.raises(TransactionFailedError) as excinfo:
        MultisigClient(stub, program_id).create_group(members[0], group_data, lamports=1)
    assert excinfo.value.err == {"InstructionError": [0, {"Custom": 1}]}


def test_get_groups_filters_by_member(program_id, group_data, members):
    stub = StubClient()
    other = GroupData(members=[GroupMember(public_key=Keypair().pubkey(), weight=1)], threshold=1)
    stub.add_account(key(20), program_id, b"\x01" + serialize(group_data))
    stub.add_account(key(21), program_id, b"\x01" + serialize(other))

    groups = MultisigClient(stub, program_id).get_groups(members[1].pubkey())

    assert [g.pubkey for g in groups] == [key(20)]
    assert groups[0].info == group_data
    assert stub.filters[0][0].bytes == b"\x01"


def test_get_proposals(program_id, members):
    stub = StubClient()
    proposal = _store_proposal(stub, program_id, members[0].pubkey())
    proposals = MultisigClient(stub, program_id).get_proposals(key(1))
    assert [p.pubkey for p in proposals] == [proposal]
    assert stub.filters[0][0].bytes == b"\x02" + bytes(key(1))


def test_scans_trust_the_program_filter(program_id, group_data, members):
    # the node already matched owner and tag; scan results are not re-checked
    stub = StubClient()
    stub.add_account(key(20), key(99), b"\x01" + serialize(group_data))
    groups = MultisigClient(stub, program_id).get_groups(members[0].pubkey())
    assert [g.pubkey for g in groups] == [key(20)]


def test_get_group(program_id, group_data):
    stub = StubClient()
    stub.add_account(key(20), program_id, b"\x01" + serialize(group_data))
    assert MultisigClient(stub, program_id).get_group(key(20)) == group_data


@pytest.mark.parametrize(
    "call",
    [
        lambda client, kp: client.create_group(kp, None),
        lambda client, kp: client.create_group(None, GroupData(members=[GroupMember(kp.pubkey(), 1)], threshold=1)),
        lambda client, kp: client.propose(kp, None, Transfer(destination=key(2), amount=1)),
        lambda client, kp: client.propose(None, key(1), Transfer(destination=key(2), amount=1)),
        lambda client, kp: client.send_propose(kp, None, []),
        lambda client, kp: client.send_propose(kp, key(1), None),
        lambda client, kp: client.approve(kp, None),
        lambda client, kp: client.close_proposal(kp, key(3), None),
        lambda client, kp: client.get_group(None),
        lambda client, kp: client.get_proposals(None),
    ],
)
def test_missing_fields_fail_before_any_rpc(program_id, members, call):
    stub = StubClient()
    with pytest.raises(UsageError):
        call(MultisigClient(stub, program_id), members[0])
    assert stub.rent_requests == []
    assert stub.sent == []


def test_from_settings_uses_configured_program():
    settings = Settings(_env_file=None, program_id=str(key(7)), commitment="finalized")
    stub = StubClient()
    client = MultisigClient.from_settings(settings, client=stub)
    assert client.program_id == key(7)
    assert client.commitment == "finalized"
    assert client.client is stub


def test_from_settings_requires_program_id(monkeypatch):
    monkeypatch.delenv("PROGRAM_ID", raising=False)
    with pytest.raises(UsageError):
        MultisigClient.from_settings(Settings(_env_file=None), client=StubClient())
