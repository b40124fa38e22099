"""SQL schemas for residual audit tables."""

# Merchant master - never hard-deleted
MERCHANTS_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS merchants (
    merchant_id VARCHAR(64) PRIMARY KEY,
    legal_name TEXT,
    dba TEXT,
    current_processor VARCHAR(100),
    branch_number VARCHAR(64),
    partner_name TEXT,
    status VARCHAR(32),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

# Processor report rows - replaced per (processor_name, month) on re-upload
PROCESSOR_RECORDS_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS processor_records (
    processor_name VARCHAR(100) NOT NULL,
    month CHAR(7) NOT NULL,
    source_row INTEGER NOT NULL,
    merchant_id VARCHAR(64) NOT NULL,
    merchant_name TEXT,
    net TEXT NOT NULL,  -- Decimal stored as text
    sales_volume TEXT NOT NULL,
    transaction_count INTEGER NOT NULL DEFAULT 0,
    group_code VARCHAR(64),
    branch_id VARCHAR(64),
    record_date VARCHAR(32),
    PRIMARY KEY (processor_name, month, source_row)
)
"""

PROCESSOR_RECORDS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_processor_records_month ON processor_records(month, merchant_id)
"""

ROLES_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS roles (
    id VARCHAR(64) PRIMARY KEY,
    name TEXT NOT NULL,
    type VARCHAR(20) CHECK (type IN ('agent', 'sales_manager', 'partner', 'association', 'company'))
)
"""

# One row per (merchant, role, month, capacity); a role may be paid in two capacities
ASSIGNMENTS_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS assignments (
    merchant_id VARCHAR(64) NOT NULL,
    role_id VARCHAR(64) NOT NULL,
    month CHAR(7) NOT NULL,
    role_type VARCHAR(20) NOT NULL,
    percentage TEXT NOT NULL,  -- Decimal stored as text
    rule_id VARCHAR(20),
    amount TEXT,
    UNIQUE (merchant_id, role_id, month, role_type)
)
"""

AUDIT_ISSUES_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS audit_issues (
    id VARCHAR(36) PRIMARY KEY,
    run_id VARCHAR(36) NOT NULL,
    merchant_id VARCHAR(64) NOT NULL,
    month CHAR(7) NOT NULL,
    type VARCHAR(30) CHECK (type IN ('split_error', 'missing_assignment', 'unmatched_mid')),
    severity VARCHAR(10) CHECK (severity IN ('high', 'medium', 'low')),
    description TEXT NOT NULL,
    status VARCHAR(20) CHECK (status IN ('open', 'investigating', 'resolved')),
    resolved_by VARCHAR(255),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

AUDIT_ISSUES_INDEX = """
CREATE INDEX IF NOT EXISTS idx_audit_issues_month ON audit_issues(month, status)
"""


def create_all_tables(cursor):
    """
    Execute all CREATE TABLE statements.

    Args:
        cursor: Database cursor object
    """
    cursor.execute(MERCHANTS_TABLE_SCHEMA)
    cursor.execute(PROCESSOR_RECORDS_TABLE_SCHEMA)
    cursor.execute(PROCESSOR_RECORDS_INDEX)
    cursor.execute(ROLES_TABLE_SCHEMA)
    cursor.execute(ASSIGNMENTS_TABLE_SCHEMA)
    cursor.execute(AUDIT_ISSUES_TABLE_SCHEMA)
    cursor.execute(AUDIT_ISSUES_INDEX)
