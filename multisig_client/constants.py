from solders.pubkey import Pubkey

SYS_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
BPF_LOADER_UPGRADEABLE_ID = Pubkey.from_string("BPFLoaderUpgradeab1e11111111111111111111111")
SYSVAR_RENT_PUBKEY = Pubkey.from_string("SysvarRent111111111111111111111111111111111")
SYSVAR_CLOCK_PUBKEY = Pubkey.from_string("SysvarC1ock11111111111111111111111111111111")

# PDA seed prefixes; must match the program's pda_tag module.
PDA_TAG_GROUP = b"\x00"
PDA_TAG_PROPOSAL = b"\x01"
PDA_TAG_PROTECTED = b"\x02"

# First byte of every account the program owns.
ACCOUNT_TYPE_GROUP = 1
ACCOUNT_TYPE_PROPOSAL = 2

# Proposal state keeps approvals in a u64 bitmask.
MAX_GROUP_MEMBERS = 64

# Upgradeable loader layout sizes.
CHUNK_SIZE = 900  # keeps a write transaction under PACKET_DATA_SIZE
BUFFER_HEADER_SIZE = 37  # UpgradeableLoaderState::buffer_len(0)
PROGRAM_ACCOUNT_SPACE = 36  # UpgradeableLoaderState::program_len()
MAX_DATA_LEN_MULTIPLIER = 3
