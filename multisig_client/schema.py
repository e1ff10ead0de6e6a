"""Borsh layouts and value types shared with the multisig program.

Every width below mirrors the program's state.rs/instruction.rs; a mismatch
does not fail loudly, it corrupts the account or instruction on-chain.
"""

import io
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from borsh_construct import Bytes, CStruct, Enum, Option, U8, U32, U64, Vec
from construct import ConstructError, Mapping
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from multisig_client.constants import MAX_GROUP_MEMBERS
from multisig_client.errors import DecodeError, UnknownInstructionError, UsageError

PubkeyLayout = U8[32]
# borsh bools are exactly 0 or 1; any other byte is a decode error.
StrictBool = Mapping(U8, {False: 0, True: 1})

GroupMemberLayout = CStruct(
    "public_key" / PubkeyLayout,
    "weight" / U32,
)
GroupDataLayout = CStruct(
    "members" / Vec(GroupMemberLayout),
    "threshold" / U32,
)
ProtectedAccountConfigLayout = CStruct(
    "lamports" / U64,
    "space" / U64,
    "owner" / PubkeyLayout,
)
ProposedAccountMetaLayout = CStruct(
    "pubkey" / PubkeyLayout,
    "is_signer" / StrictBool,
    "is_writable" / StrictBool,
)
ProposedInstructionLayout = CStruct(
    "program_id" / PubkeyLayout,
    "accounts" / Vec(ProposedAccountMetaLayout),
    "data" / Bytes,
)
ProposalStateLayout = CStruct(
    "members" / U64,
    "current_weight" / U32,
)
ProposalConfigLayout = CStruct(
    "group" / PubkeyLayout,
    "instructions" / Vec(ProposedInstructionLayout),
    "author" / PubkeyLayout,
    "salt" / U64,
)
ProposalDataLayout = CStruct(
    "config" / ProposalConfigLayout,
    "state" / ProposalStateLayout,
)
InitInstructionLayout = CStruct(
    "group_data" / GroupDataLayout,
    "lamports" / U64,
    "protected_account_config" / Option(ProtectedAccountConfigLayout),
)
ProposeInstructionLayout = CStruct(
    "instructions" / Vec(ProposedInstructionLayout),
    "lamports" / U64,
    "salt" / U64,
)
ApproveInstructionLayout = CStruct()
CloseProposalInstructionLayout = CStruct()

InstructionDataLayout = Enum(
    "init" / InitInstructionLayout,
    "propose" / ProposeInstructionLayout,
    "approve" / ApproveInstructionLayout,
    "closeProposal" / CloseProposalInstructionLayout,
    enum_name="InstructionData",
)


def _pubkey_bytes(key: Pubkey) -> List[int]:
    return list(bytes(key))


def _to_pubkey(raw: Any) -> Pubkey:
    return Pubkey.from_bytes(bytes(raw))


@dataclass(frozen=True)
class GroupMember:
    public_key: Pubkey
    weight: int

    def to_fields(self) -> dict:
        return {"public_key": _pubkey_bytes(self.public_key), "weight": self.weight}

    @classmethod
    def from_fields(cls, obj: Any) -> "GroupMember":
        return cls(public_key=_to_pubkey(obj.public_key), weight=obj.weight)


@dataclass(frozen=True)
class GroupData:
    members: List[GroupMember]
    threshold: int

    def to_fields(self) -> dict:
        return {
            "members": [member.to_fields() for member in self.members],
            "threshold": self.threshold,
        }

    @classmethod
    def from_fields(cls, obj: Any) -> "GroupData":
        return cls(
            members=[GroupMember.from_fields(member) for member in obj.members],
            threshold=obj.threshold,
        )

    def weight_of(self, key: Pubkey) -> Tuple[int, int]:
        """Return ``(member index, weight)`` for ``key``."""
        for idx, member in enumerate(self.members):
            if member.public_key == key:
                return idx, member.weight
        raise UsageError(f"{key} is not a member of this group")

    def is_member(self, key: Pubkey) -> bool:
        return any(member.public_key == key for member in self.members)

    def total_weight(self) -> int:
        return sum(member.weight for member in self.members)

    def validate(self) -> None:
        """Reject groups the program would refuse to initialize."""
        if self.threshold == 0:
            raise UsageError("threshold can't be zero")
        if not self.members:
            raise UsageError("no group members")
        if len(self.members) > MAX_GROUP_MEMBERS:
            raise UsageError(f"too many group members (max {MAX_GROUP_MEMBERS})")
        for member in self.members:
            if member.weight == 0:
                raise UsageError(f"weight can't be zero (member {member.public_key})")
        if self.total_weight() < self.threshold:
            raise UsageError(
                f"threshold is unreachable: total weight {self.total_weight()} < {self.threshold}"
            )


@dataclass(frozen=True)
class ProtectedAccountConfig:
    lamports: int
    space: int
    owner: Pubkey

    def to_fields(self) -> dict:
        return {"lamports": self.lamports, "space": self.space, "owner": _pubkey_bytes(self.owner)}

    @classmethod
    def from_fields(cls, obj: Any) -> "ProtectedAccountConfig":
        return cls(lamports=obj.lamports, space=obj.space, owner=_to_pubkey(obj.owner))


@dataclass(frozen=True)
class ProposedAccountMeta:
    pubkey: Pubkey
    is_signer: bool
    is_writable: bool

    def to_fields(self) -> dict:
        return {
            "pubkey": _pubkey_bytes(self.pubkey),
            "is_signer": self.is_signer,
            "is_writable": self.is_writable,
        }

    @classmethod
    def from_fields(cls, obj: Any) -> "ProposedAccountMeta":
        return cls(
            pubkey=_to_pubkey(obj.pubkey),
            is_signer=bool(obj.is_signer),
            is_writable=bool(obj.is_writable),
        )


@dataclass(frozen=True)
class ProposedInstruction:
    program_id: Pubkey
    accounts: List[ProposedAccountMeta]
    data: bytes

    def to_fields(self) -> dict:
        return {
            "program_id": _pubkey_bytes(self.program_id),
            "accounts": [meta.to_fields() for meta in self.accounts],
            "data": bytes(self.data),
        }

    @classmethod
    def from_fields(cls, obj: Any) -> "ProposedInstruction":
        return cls(
            program_id=_to_pubkey(obj.program_id),
            accounts=[ProposedAccountMeta.from_fields(meta) for meta in obj.accounts],
            data=bytes(obj.data),
        )

    @classmethod
    def from_instruction(cls, ix: Instruction) -> "ProposedInstruction":
        return cls(
            program_id=ix.program_id,
            accounts=[
                ProposedAccountMeta(pubkey=meta.pubkey, is_signer=meta.is_signer, is_writable=meta.is_writable)
                for meta in ix.accounts
            ],
            data=bytes(ix.data),
        )

    def to_instruction(self) -> Instruction:
        accounts = [
            AccountMeta(pubkey=meta.pubkey, is_signer=meta.is_signer, is_writable=meta.is_writable)
            for meta in self.accounts
        ]
        return Instruction(program_id=self.program_id, data=self.data, accounts=accounts)


@dataclass(frozen=True)
class ProposalState:
    members: int = 0
    current_weight: int = 0

    def to_fields(self) -> dict:
        return {"members": self.members, "current_weight": self.current_weight}

    @classmethod
    def from_fields(cls, obj: Any) -> "ProposalState":
        return cls(members=obj.members, current_weight=obj.current_weight)

    def is_approved_by(self, index: int) -> bool:
        return bool(self.members & (1 << index))

    def approver_count(self) -> int:
        return bin(self.members).count("1")


@dataclass(frozen=True)
class ProposalConfig:
    group: Pubkey
    instructions: List[ProposedInstruction]
    author: Pubkey
    # Only here to make the content hash, and so the proposal address, unique.
    salt: int

    def to_fields(self) -> dict:
        return {
            "group": _pubkey_bytes(self.group),
            "instructions": [ix.to_fields() for ix in self.instructions],
            "author": _pubkey_bytes(self.author),
            "salt": self.salt,
        }

    @classmethod
    def from_fields(cls, obj: Any) -> "ProposalConfig":
        return cls(
            group=_to_pubkey(obj.group),
            instructions=[ProposedInstruction.from_fields(ix) for ix in obj.instructions],
            author=_to_pubkey(obj.author),
            salt=obj.salt,
        )


@dataclass(frozen=True)
class ProposalData:
    config: ProposalConfig
    state: ProposalState

    def to_fields(self) -> dict:
        return {"config": self.config.to_fields(), "state": self.state.to_fields()}

    @classmethod
    def from_fields(cls, obj: Any) -> "ProposalData":
        return cls(
            config=ProposalConfig.from_fields(obj.config),
            state=ProposalState.from_fields(obj.state),
        )


@dataclass(frozen=True)
class InitInstruction:
    group_data: GroupData
    lamports: int
    protected_account_config: Optional[ProtectedAccountConfig] = None

    def to_fields(self) -> dict:
        protected = self.protected_account_config
        return {
            "group_data": self.group_data.to_fields(),
            "lamports": self.lamports,
            "protected_account_config": protected.to_fields() if protected is not None else None,
        }

    @classmethod
    def from_fields(cls, obj: Any) -> "InitInstruction":
        protected = obj.protected_account_config
        return cls(
            group_data=GroupData.from_fields(obj.group_data),
            lamports=obj.lamports,
            protected_account_config=ProtectedAccountConfig.from_fields(protected) if protected is not None else None,
        )


@dataclass(frozen=True)
class ProposeInstruction:
    instructions: List[ProposedInstruction]
    lamports: int
    salt: int

    def to_fields(self) -> dict:
        return {
            "instructions": [ix.to_fields() for ix in self.instructions],
            "lamports": self.lamports,
            "salt": self.salt,
        }

    @classmethod
    def from_fields(cls, obj: Any) -> "ProposeInstruction":
        return cls(
            instructions=[ProposedInstruction.from_fields(ix) for ix in obj.instructions],
            lamports=obj.lamports,
            salt=obj.salt,
        )


@dataclass(frozen=True)
class ApproveInstruction:
    def to_fields(self) -> dict:
        return {}

    @classmethod
    def from_fields(cls, obj: Any) -> "ApproveInstruction":
        return cls()


@dataclass(frozen=True)
class CloseProposalInstruction:
    def to_fields(self) -> dict:
        return {}

    @classmethod
    def from_fields(cls, obj: Any) -> "CloseProposalInstruction":
        return cls()


InstructionPayload = Union[InitInstruction, ProposeInstruction, ApproveInstruction, CloseProposalInstruction]

# Declaration order is the discriminant.
INSTRUCTION_VARIANTS: List[Tuple[str, Type]] = [
    ("init", InitInstruction),
    ("propose", ProposeInstruction),
    ("approve", ApproveInstruction),
    ("closeProposal", CloseProposalInstruction),
]
_VARIANT_BY_TYPE: Dict[Type, str] = {cls: name for name, cls in INSTRUCTION_VARIANTS}


@dataclass(frozen=True)
class InstructionData:
    value: InstructionPayload

    def __post_init__(self) -> None:
        if type(self.value) not in _VARIANT_BY_TYPE:
            raise UnknownInstructionError(f"unknown instruction type: {type(self.value).__name__}")

    @property
    def variant(self) -> str:
        return _VARIANT_BY_TYPE[type(self.value)]

    @property
    def discriminant(self) -> int:
        return [name for name, _ in INSTRUCTION_VARIANTS].index(self.variant)

    def to_fields(self) -> Any:
        variant_type = getattr(InstructionDataLayout.enum, self.variant)
        return variant_type(**self.value.to_fields())

    @classmethod
    def from_fields(cls, obj: Any) -> "InstructionData":
        for name, payload_cls in INSTRUCTION_VARIANTS:
            if isinstance(obj, getattr(InstructionDataLayout.enum, name)):
                return cls(payload_cls.from_fields(obj))
        raise UnknownInstructionError(f"unknown instruction variant: {obj!r}")


SCHEMA: Dict[Type, Any] = {
    GroupMember: GroupMemberLayout,
    GroupData: GroupDataLayout,
    ProtectedAccountConfig: ProtectedAccountConfigLayout,
    ProposedAccountMeta: ProposedAccountMetaLayout,
    ProposedInstruction: ProposedInstructionLayout,
    ProposalState: ProposalStateLayout,
    ProposalConfig: ProposalConfigLayout,
    ProposalData: ProposalDataLayout,
    InitInstruction: InitInstructionLayout,
    ProposeInstruction: ProposeInstructionLayout,
    ApproveInstruction: ApproveInstructionLayout,
    CloseProposalInstruction: CloseProposalInstructionLayout,
    InstructionData: InstructionDataLayout,
}


def _layout_for(cls: Type) -> Any:
    try:
        return SCHEMA[cls]
    except KeyError:
        raise UsageError(f"no layout registered for {cls.__name__}") from None


def serialize(value: Any) -> bytes:
    layout = _layout_for(type(value))
    try:
        return layout.build(value.to_fields())
    except ConstructError as exc:
        raise UsageError(f"cannot encode {type(value).__name__}: {exc}") from exc


def deserialize(cls: Type, data: bytes) -> Any:
    """Parse exactly one ``cls`` value from ``data``."""
    layout = _layout_for(cls)
    raw = bytes(data)
    if cls is InstructionData:
        if not raw:
            raise DecodeError("instruction data is empty")
        if raw[0] >= len(INSTRUCTION_VARIANTS):
            raise UnknownInstructionError(f"unknown instruction discriminant: {raw[0]}")
    stream = io.BytesIO(raw)
    try:
        parsed = layout.parse_stream(stream)
    except (ConstructError, KeyError, IndexError, ValueError) as exc:
        raise DecodeError(f"invalid {cls.__name__} data: {exc}") from exc
    consumed = stream.tell()
    if consumed != len(raw):
        raise DecodeError(f"{len(raw) - consumed} unexpected bytes after {cls.__name__}")
    return cls.from_fields(parsed)


def encode_instruction(payload: InstructionPayload) -> bytes:
    return serialize(InstructionData(payload))


def decode_instruction(data: bytes) -> InstructionPayload:
    return deserialize(InstructionData, data).value
