"""
ingestion/escrow/constants.py

Well-known accounts of the escrow program and the compression stack it
runs on (devnet deployment).
"""
from solders.pubkey import Pubkey


# Escrow program
PROGRAM_ID = Pubkey.from_string("4LhEEtzAhM6wEXJR2YQHPEs79UEx8e6HncmeHbqbW1w1")

# Compression trees (single well-known tree per kind, no sharding)
STATE_TREE = Pubkey.from_string("smt6ukQDSPPYHSshQovmiRUjG9jGFq2hW9vgrDFk5Yz")
STATE_QUEUE = Pubkey.from_string("nfq6uzaNZ5n3EWF4t64M93AWzLGt5dXTikEA9fFRktv")
ADDRESS_TREE = Pubkey.from_string("amt1Ayt45jfbdw5YSo7iz6WZxUmnZsQTYXy82hVwyC2")
ADDRESS_QUEUE = Pubkey.from_string("aq1S9z4reTSQAdgWHGD2zDaS39sjGrAxbR31vxJ2F4F")

# Light protocol programs and authorities
LIGHT_SYSTEM_PROGRAM = Pubkey.from_string("SySTEM1eSU2p4BGQfQpimFEWWSC1XDFeun3Nqzz3rT7")
ACCOUNT_COMPRESSION_PROGRAM = Pubkey.from_string("compr6CUsB5m2jS4Y3831ztGSTnDpnKJTKS95d64XVq")
REGISTERED_PROGRAM_PDA = Pubkey.from_string("35hkDgaAKwMCaxRz2ocSZ6NaUrtKkyNqU6c4RV3tYJRh")
ACCOUNT_COMPRESSION_AUTHORITY = Pubkey.from_string("HwXnGK3tPkkVY6P439H2p68AxpeuWXd5PcrAxFpbmfbA")
NOOP_PROGRAM = Pubkey.from_string("noopb9bkMVfRPU8AsbpTUg8AQkHtKwMYZiFUjNRtMmV")

SYSTEM_PROGRAM = Pubkey.from_string("11111111111111111111111111111111")

# Seeds
ESCROW_SEED = b"escrow"
CPI_AUTHORITY_SEED = b"cpi_authority"
PROTOCOL_VAULT_SEED = b"protocol_vault"

CPI_AUTHORITY, _CPI_AUTHORITY_BUMP = Pubkey.find_program_address([CPI_AUTHORITY_SEED], PROGRAM_ID)
PROTOCOL_VAULT, _PROTOCOL_VAULT_BUMP = Pubkey.find_program_address([PROTOCOL_VAULT_SEED], PROGRAM_ID)

# Packed tree indices, relative to the first tree account in the
# remaining accounts of each instruction kind.
INIT_ADDRESS_TREE_INDEX = 0
INIT_OUTPUT_STATE_TREE_INDEX = 1
INIT_ADDRESS_QUEUE_INDEX = 2

MUTATE_STATE_TREE_INDEX = 0
MUTATE_STATE_QUEUE_INDEX = 1
MUTATE_OUTPUT_STATE_TREE_INDEX = 0
