import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from solana.rpc.api import Client
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from multisig_client.accounts import (
    account_data_bytes,
    group_filter,
    proposal_filter,
    read_group_account,
    read_proposal_account,
    read_verified_group_data,
    read_verified_proposal_data,
)
from multisig_client.addresses import (
    group_account_key,
    group_account_space,
    proposal_account_key,
    proposal_account_space,
    protected_account_key,
)
from multisig_client.config import Settings
from multisig_client.errors import AccountNotFoundError, TransactionFailedError
from multisig_client.multisig import (
    build_approve_ix,
    build_close_proposal_ix,
    build_init_ix,
    build_propose_ix,
    make_proposal_config,
    proposed_instructions,
    require,
)
from multisig_client.propositions import Proposition, resolve_proposition
from multisig_client.schema import (
    GroupData,
    InitInstruction,
    ProposalData,
    ProposeInstruction,
    ProtectedAccountConfig,
)

logger = logging.getLogger("multisig")


def current_salt() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class GroupAccount:
    pubkey: Pubkey
    info: GroupData


@dataclass(frozen=True)
class ProposalAccount:
    pubkey: Pubkey
    info: ProposalData


class MultisigClient:
    """Drives the multisig program over a synchronous RPC client."""

    def __init__(self, client: Client, program_id: Pubkey, commitment: Commitment = Confirmed) -> None:
        self.client = client
        self.program_id = program_id
        self.commitment = commitment

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[Client] = None) -> "MultisigClient":
        commitment = Commitment(settings.commitment)
        if client is None:
            client = Client(settings.rpc_url(), commitment=commitment)
        return cls(client, settings.program_pubkey(), commitment=commitment)

    def protected_account(self, group: Pubkey) -> Pubkey:
        return protected_account_key(self.program_id, group)

    def create_group(
        self,
        payer: Keypair,
        group_data: GroupData,
        lamports: Optional[int] = None,
        protected_config: Optional[ProtectedAccountConfig] = None,
    ) -> Pubkey:
        require(payer, "payer")
        require(group_data, "group_data")
        group_data.validate()
        if lamports is None:
            lamports = self._rent(group_account_space(group_data))
        init = InitInstruction(
            group_data=group_data,
            lamports=lamports,
            protected_account_config=protected_config,
        )
        group = group_account_key(self.program_id, group_data)
        logger.info(
            "group_create group=%s members=%s threshold=%s lamports=%s protected=%s",
            group,
            len(group_data.members),
            group_data.threshold,
            lamports,
            protected_config is not None,
        )
        self._send([build_init_ix(self.program_id, init, payer.pubkey())], [payer])
        return group

    def propose(
        self,
        author: Keypair,
        group: Pubkey,
        proposition: Proposition,
        salt: Optional[int] = None,
    ) -> Pubkey:
        require(author, "author")
        require(group, "group")
        require(proposition, "proposition")
        ixs = resolve_proposition(proposition, self.protected_account(group), self.program_id)
        logger.info("proposal_resolved group=%s kind=%s instructions=%s", group, proposition.kind.value, len(ixs))
        return self.send_propose(author, group, ixs, salt=salt)

    def send_propose(
        self,
        author: Keypair,
        group: Pubkey,
        instructions: Sequence[Instruction],
        salt: Optional[int] = None,
    ) -> Pubkey:
        require(author, "author")
        require(group, "group")
        require(instructions, "instructions")
        if salt is None:
            salt = current_salt()
        proposed = proposed_instructions(instructions)
        config = make_proposal_config(group, author.pubkey(), proposed, salt)
        proposal = proposal_account_key(self.program_id, config)
        rent = self._rent(proposal_account_space(config))
        propose = ProposeInstruction(instructions=proposed, lamports=rent, salt=salt)
        ix = build_propose_ix(self.program_id, propose, group, author.pubkey())
        self._send([ix], [author])
        logger.info("proposal_created proposal=%s group=%s salt=%s", proposal, group, salt)
        return proposal

    def approve(self, signer: Keypair, proposal: Pubkey) -> Signature:
        require(signer, "signer")
        require(proposal, "proposal")
        data = self.get_proposal(proposal)
        logger.info(
            "proposal_approve proposal=%s group=%s signer=%s",
            proposal,
            data.config.group,
            signer.pubkey(),
        )
        ix = build_approve_ix(self.program_id, proposal, data.config, signer.pubkey())
        return self._send([ix], [signer])

    def close_proposal(self, signer: Keypair, proposal: Pubkey, destination: Pubkey) -> Signature:
        require(signer, "signer")
        require(proposal, "proposal")
        require(destination, "destination")
        data = self.get_proposal(proposal)
        logger.info("proposal_close proposal=%s group=%s destination=%s", proposal, data.config.group, destination)
        ix = build_close_proposal_ix(self.program_id, proposal, signer.pubkey(), destination)
        return self._send([ix], [signer])

    def get_group(self, key: Pubkey) -> GroupData:
        return read_group_account(self._account_info(key), self.program_id)

    def get_proposal(self, key: Pubkey) -> ProposalData:
        return read_proposal_account(self._account_info(key), self.program_id)

    def get_groups(self, member: Pubkey) -> List[GroupAccount]:
        require(member, "member")
        resp = self.client.get_program_accounts(
            self.program_id,
            commitment=self.commitment,
            encoding="base64",
            filters=[group_filter()],
        )
        groups: List[GroupAccount] = []
        for acc in resp.value or []:
            # the tag filter already selected group accounts of this program
            info = read_verified_group_data(account_data_bytes(acc.account.data))
            if info.is_member(member):
                groups.append(GroupAccount(pubkey=acc.pubkey, info=info))
        return groups

    def get_proposals(self, group: Pubkey) -> List[ProposalAccount]:
        require(group, "group")
        resp = self.client.get_program_accounts(
            self.program_id,
            commitment=self.commitment,
            encoding="base64",
            filters=[proposal_filter(group)],
        )
        return [
            ProposalAccount(pubkey=acc.pubkey, info=read_verified_proposal_data(account_data_bytes(acc.account.data)))
            for acc in resp.value or []
        ]

    def _account_info(self, key: Pubkey):
        require(key, "key")
        resp = self.client.get_account_info(key, commitment=self.commitment)
        if resp.value is None:
            raise AccountNotFoundError(f"account not found: {key}")
        return resp.value

    def _rent(self, space: int) -> int:
        return self.client.get_minimum_balance_for_rent_exemption(space, commitment=self.commitment).value

    def _send(self, ixs: List[Instruction], signers: List[Keypair]) -> Signature:
        blockhash = self.client.get_latest_blockhash(commitment=self.commitment).value.blockhash
        tx = Transaction.new_signed_with_payer(ixs, signers[0].pubkey(), signers, blockhash)
        resp = self.client.send_raw_transaction(
            bytes(tx),
            opts=TxOpts(skip_preflight=False, preflight_commitment=self.commitment),
        )
        signature = resp.value
        confirm = self.client.confirm_transaction(signature, commitment=self.commitment)
        status = confirm.value[0] if confirm.value else None
        if status is not None and status.err is not None:
            logger.error("transaction_failed sig=%s err=%s", signature, status.err)
            raise TransactionFailedError(str(signature), status.err)
        logger.info("transaction_confirmed sig=%s", signature)
        return signature
