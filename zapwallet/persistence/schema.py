"""SQL schema definitions for the wallet store."""

# Schema version for migrations
SCHEMA_VERSION = 1

CREATE_WALLETS_TABLE = """
CREATE TABLE IF NOT EXISTS wallets (
    id INTEGER PRIMARY KEY,
    kind TEXT NOT NULL,
    name TEXT NOT NULL,
    active INTEGER NOT NULL DEFAULT 0,
    data TEXT NOT NULL DEFAULT '',
    position INTEGER NOT NULL
);
"""

CREATE_BALANCES_TABLE = """
CREATE TABLE IF NOT EXISTS balances (
    wallet_id INTEGER PRIMARY KEY,
    balance_sats INTEGER NOT NULL,
    updated_at REAL NOT NULL
);
"""

CREATE_WALLETS_POSITION_INDEX = """
CREATE INDEX IF NOT EXISTS idx_wallets_position ON wallets(position);
"""

# All schema statements in order
SCHEMA_STATEMENTS = [
    CREATE_WALLETS_TABLE,
    CREATE_BALANCES_TABLE,
    CREATE_WALLETS_POSITION_INDEX,
]
