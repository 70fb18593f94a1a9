"""Database schema definitions for Arbiter."""

# SQL schema for creating tables

CREATE_CONTRACTS_TABLE = """
CREATE TABLE IF NOT EXISTS contracts (
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    betting_end_time TIMESTAMP NOT NULL,
    party_a TEXT NOT NULL,
    party_b TEXT NOT NULL,
    winner_id TEXT,
    topic TEXT,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);
"""

CREATE_CONTRACTS_STATUS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_contracts_status
ON contracts(status);
"""

# One decision per contract
CREATE_DECISIONS_TABLE = """
CREATE TABLE IF NOT EXISTS decisions (
    id TEXT PRIMARY KEY,
    contract_id TEXT NOT NULL UNIQUE,
    deliberation_id TEXT NOT NULL,
    winner_id TEXT NOT NULL,
    confidence REAL NOT NULL,
    methodology TEXT NOT NULL,
    reasoning TEXT,
    evidence TEXT,
    metrics TEXT,
    consensus TEXT NOT NULL,
    transaction_ref TEXT NOT NULL,
    messages TEXT,
    created_at TIMESTAMP NOT NULL,
    FOREIGN KEY (contract_id) REFERENCES contracts(id)
);
"""

CREATE_DECISIONS_CREATED_INDEX = """
CREATE INDEX IF NOT EXISTS idx_decisions_created
ON decisions(created_at);
"""

ALL_TABLES = [
    CREATE_CONTRACTS_TABLE,
    CREATE_CONTRACTS_STATUS_INDEX,
    CREATE_DECISIONS_TABLE,
    CREATE_DECISIONS_CREATED_INDEX,
]
