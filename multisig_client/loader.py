"""Upload program bytecode through the upgradeable BPF loader.

Init creates a buffer account, Write fills it in CHUNK_SIZE slices addressed by
offset, Deploy creates the program account and moves the buffer into program
data. Writes are offset-addressed, so the async mode may land them in any
order; only "all writes confirmed before deploy" matters.
"""

import asyncio
import logging
import math
from enum import IntEnum
from typing import List, Optional, Sequence, Tuple

from construct import GreedyBytes, Int32ul, Int64ul, Pass, Prefixed, Struct, Switch, this
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.types import TxOpts
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import CreateAccountParams, create_account
from solders.transaction import Transaction

from multisig_client.addresses import program_data_key
from multisig_client.config import Settings
from multisig_client.constants import (
    BPF_LOADER_UPGRADEABLE_ID,
    BUFFER_HEADER_SIZE,
    CHUNK_SIZE,
    MAX_DATA_LEN_MULTIPLIER,
    PROGRAM_ACCOUNT_SPACE,
    SYS_PROGRAM_ID,
    SYSVAR_CLOCK_PUBKEY,
    SYSVAR_RENT_PUBKEY,
)
from multisig_client.errors import TransactionFailedError, UsageError

logger = logging.getLogger("multisig")


class LoaderInstruction(IntEnum):
    INITIALIZE_BUFFER = 0
    WRITE = 1
    DEPLOY_WITH_MAX_DATA_LEN = 2
    UPGRADE = 3
    SET_AUTHORITY = 4
    CLOSE = 5


# bincode: u32 variant tag, Vec<u8> with a u64 length prefix.
WriteLayout = Struct(
    "offset" / Int32ul,
    "bytes" / Prefixed(Int64ul, GreedyBytes),
)
DeployWithMaxDataLenLayout = Struct("max_data_len" / Int64ul)
LoaderInstructionLayout = Struct(
    "tag" / Int32ul,
    "args"
    / Switch(
        this.tag,
        {
            LoaderInstruction.WRITE: WriteLayout,
            LoaderInstruction.DEPLOY_WITH_MAX_DATA_LEN: DeployWithMaxDataLenLayout,
        },
        default=Pass,
    ),
)


def encode_loader_instruction(tag: LoaderInstruction, args: Optional[dict] = None) -> bytes:
    return LoaderInstructionLayout.build({"tag": int(tag), "args": args})


def buffer_space(data_len: int) -> int:
    return BUFFER_HEADER_SIZE + data_len


def max_data_len(data_len: int) -> int:
    # Headroom for future upgrades.
    return MAX_DATA_LEN_MULTIPLIER * data_len


def chunk_offsets(data_len: int, chunk_size: int = CHUNK_SIZE) -> List[int]:
    return list(range(0, data_len, chunk_size))


def min_num_signatures(data_len: int) -> int:
    # payer + program per transaction; chunks plus create and finalize
    return 2 * (math.ceil(data_len / CHUNK_SIZE) + 1 + 1)


def build_initialize_buffer_ixs(
    payer: Pubkey,
    buffer: Pubkey,
    authority: Pubkey,
    data_len: int,
    lamports: int,
) -> List[Instruction]:
    create = create_account(
        CreateAccountParams(
            from_pubkey=payer,
            to_pubkey=buffer,
            lamports=lamports,
            space=buffer_space(data_len),
            owner=BPF_LOADER_UPGRADEABLE_ID,
        )
    )
    initialize = Instruction(
        program_id=BPF_LOADER_UPGRADEABLE_ID,
        data=encode_loader_instruction(LoaderInstruction.INITIALIZE_BUFFER),
        accounts=[
            AccountMeta(pubkey=buffer, is_signer=False, is_writable=True),
            AccountMeta(pubkey=authority, is_signer=False, is_writable=False),
        ],
    )
    return [create, initialize]


def build_write_ix(buffer: Pubkey, authority: Pubkey, offset: int, chunk: bytes) -> Instruction:
    return Instruction(
        program_id=BPF_LOADER_UPGRADEABLE_ID,
        data=encode_loader_instruction(LoaderInstruction.WRITE, {"offset": offset, "bytes": bytes(chunk)}),
        accounts=[
            AccountMeta(pubkey=buffer, is_signer=False, is_writable=True),
            AccountMeta(pubkey=authority, is_signer=True, is_writable=False),
        ],
    )


def build_write_ixs(buffer: Pubkey, authority: Pubkey, data: bytes) -> List[Tuple[int, Instruction]]:
    return [
        (offset, build_write_ix(buffer, authority, offset, data[offset : offset + CHUNK_SIZE]))
        for offset in chunk_offsets(len(data))
    ]


def build_deploy_ixs(
    payer: Pubkey,
    program: Pubkey,
    buffer: Pubkey,
    authority: Pubkey,
    data_len: int,
    lamports: int,
) -> List[Instruction]:
    create = create_account(
        CreateAccountParams(
            from_pubkey=payer,
            to_pubkey=program,
            lamports=lamports,
            space=PROGRAM_ACCOUNT_SPACE,
            owner=BPF_LOADER_UPGRADEABLE_ID,
        )
    )
    deploy = Instruction(
        program_id=BPF_LOADER_UPGRADEABLE_ID,
        data=encode_loader_instruction(
            LoaderInstruction.DEPLOY_WITH_MAX_DATA_LEN, {"max_data_len": max_data_len(data_len)}
        ),
        accounts=[
            AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
            AccountMeta(pubkey=program_data_key(program), is_signer=False, is_writable=True),
            AccountMeta(pubkey=program, is_signer=False, is_writable=True),
            AccountMeta(pubkey=buffer, is_signer=False, is_writable=True),
            AccountMeta(pubkey=SYSVAR_RENT_PUBKEY, is_signer=False, is_writable=False),
            AccountMeta(pubkey=SYSVAR_CLOCK_PUBKEY, is_signer=False, is_writable=False),
            AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=authority, is_signer=True, is_writable=False),
        ],
    )
    return [create, deploy]


def build_upgrade_ix(program: Pubkey, buffer: Pubkey, spill: Pubkey, authority: Pubkey) -> Instruction:
    accounts = [
        AccountMeta(pubkey=program_data_key(program), is_signer=False, is_writable=True),
        AccountMeta(pubkey=program, is_signer=False, is_writable=True),
        AccountMeta(pubkey=buffer, is_signer=False, is_writable=True),
        AccountMeta(pubkey=spill, is_signer=False, is_writable=True),
        AccountMeta(pubkey=SYSVAR_RENT_PUBKEY, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYSVAR_CLOCK_PUBKEY, is_signer=False, is_writable=False),
        AccountMeta(pubkey=authority, is_signer=True, is_writable=False),
    ]
    return Instruction(
        program_id=BPF_LOADER_UPGRADEABLE_ID,
        data=encode_loader_instruction(LoaderInstruction.UPGRADE),
        accounts=accounts,
    )


def build_set_authority_ix(program: Pubkey, current_authority: Pubkey, new_authority: Pubkey) -> Instruction:
    accounts = [
        AccountMeta(pubkey=program_data_key(program), is_signer=False, is_writable=True),
        AccountMeta(pubkey=current_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=new_authority, is_signer=False, is_writable=False),
    ]
    return Instruction(
        program_id=BPF_LOADER_UPGRADEABLE_ID,
        data=encode_loader_instruction(LoaderInstruction.SET_AUTHORITY),
        accounts=accounts,
    )


def _unique_signers(signers: Sequence[Keypair]) -> List[Keypair]:
    seen = set()
    unique: List[Keypair] = []
    for signer in signers:
        if signer.pubkey() in seen:
            continue
        seen.add(signer.pubkey())
        unique.append(signer)
    return unique


class Loader:
    def __init__(self, client: AsyncClient, commitment: Commitment = Confirmed, asynchronous: bool = False) -> None:
        self.client = client
        self.commitment = commitment
        self.asynchronous = asynchronous
        self.opts = TxOpts(skip_preflight=False, preflight_commitment=commitment)

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[AsyncClient] = None) -> "Loader":
        commitment = Commitment(settings.commitment)
        if client is None:
            client = AsyncClient(settings.rpc_url(), commitment=commitment)
        return cls(client, commitment=commitment, asynchronous=settings.loader_async)

    async def deploy(
        self,
        payer: Keypair,
        program: Keypair,
        authority: Keypair,
        data: bytes,
        *,
        asynchronous: Optional[bool] = None,
        buffer: Optional[Keypair] = None,
    ) -> Pubkey:
        """Upload ``data`` and deploy it as ``program``; returns the buffer address."""
        if not data:
            raise UsageError("program data is empty")
        if asynchronous is None:
            asynchronous = self.asynchronous
        buffer = buffer or Keypair()
        await self.init_buffer(payer, authority, buffer, len(data))
        if asynchronous:
            await self.write_buffer_async(payer, authority, buffer.pubkey(), data)
        else:
            await self.write_buffer(payer, authority, buffer.pubkey(), data)
        await self.deploy_buffer(payer, program, authority, buffer.pubkey(), len(data))
        return buffer.pubkey()

    async def init_buffer(self, payer: Keypair, authority: Keypair, buffer: Keypair, data_len: int) -> None:
        logger.info("loader_init_buffer buffer=%s authority=%s", buffer.pubkey(), authority.pubkey())
        lamports = await self._rent(buffer_space(data_len))
        ixs = build_initialize_buffer_ixs(payer.pubkey(), buffer.pubkey(), authority.pubkey(), data_len, lamports)
        await self._send_and_confirm(ixs, [payer, buffer])
        logger.info("loader_buffer_initialized buffer=%s", buffer.pubkey())

    async def write_buffer(self, payer: Keypair, authority: Keypair, buffer: Pubkey, data: bytes) -> None:
        for offset, ix in build_write_ixs(buffer, authority.pubkey(), data):
            await self._send_and_confirm([ix], [payer, authority])
            logger.info("loader_write_progress offset=%s total=%s", offset, len(data))
        logger.info("loader_write_complete buffer=%s", buffer)

    async def write_buffer_async(self, payer: Keypair, authority: Keypair, buffer: Pubkey, data: bytes) -> None:
        blockhash = await self._blockhash()
        signers = _unique_signers([payer, authority])
        txs = [
            Transaction.new_signed_with_payer([ix], payer.pubkey(), signers, blockhash)
            for _, ix in build_write_ixs(buffer, authority.pubkey(), data)
        ]
        signatures = await self._gather([self._send(tx) for tx in txs])
        logger.info("loader_write_sent count=%s", len(signatures))
        await self._gather([self._confirm(sig) for sig in signatures])
        logger.info("loader_write_complete buffer=%s", buffer)

    async def deploy_buffer(
        self,
        payer: Keypair,
        program: Keypair,
        authority: Keypair,
        buffer: Pubkey,
        data_len: int,
    ) -> None:
        lamports = await self._rent(PROGRAM_ACCOUNT_SPACE)
        ixs = build_deploy_ixs(payer.pubkey(), program.pubkey(), buffer, authority.pubkey(), data_len, lamports)
        await self._send_and_confirm(ixs, [payer, program, authority])
        logger.info("loader_deployed program=%s buffer=%s", program.pubkey(), buffer)

    async def _rent(self, space: int) -> int:
        resp = await self.client.get_minimum_balance_for_rent_exemption(space)
        return resp.value

    async def _blockhash(self):
        resp = await self.client.get_latest_blockhash()
        return resp.value.blockhash

    async def _send(self, tx: Transaction) -> Signature:
        resp = await self.client.send_raw_transaction(bytes(tx), opts=self.opts)
        return resp.value

    async def _confirm(self, signature: Signature) -> None:
        resp = await self.client.confirm_transaction(signature, commitment=self.commitment)
        status = resp.value[0] if resp.value else None
        if status is not None and status.err is not None:
            raise TransactionFailedError(str(signature), status.err)

    async def _send_and_confirm(self, ixs: List[Instruction], signers: Sequence[Keypair]) -> Signature:
        signers = _unique_signers(signers)
        tx = Transaction.new_signed_with_payer(ixs, signers[0].pubkey(), signers, await self._blockhash())
        signature = await self._send(tx)
        await self._confirm(signature)
        return signature

    @staticmethod
    async def _gather(aws) -> list:
        # Await every operation before surfacing the first failure.
        results = await asyncio.gather(*aws, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return results
