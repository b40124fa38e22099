"""SQLite implementation of the residuals store"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Optional, Set

from residual_audit.constants import IssueStatus
from residual_audit.db.schemas import create_all_tables
from residual_audit.db.store import ResidualsStore
from residual_audit.models import Assignment, AuditIssue, Merchant, ProcessorRecord, Role
from residual_audit.utils.errors import DatabaseError, MasterDataUnavailableError
from residual_audit.utils.logging import get_logger

logger = get_logger(__name__)

UPSERT_MERCHANT = """
INSERT INTO merchants (merchant_id, legal_name, dba, current_processor, branch_number,
                       partner_name, status, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(merchant_id) DO UPDATE SET
    legal_name = excluded.legal_name,
    dba = excluded.dba,
    current_processor = excluded.current_processor,
    branch_number = excluded.branch_number,
    partner_name = excluded.partner_name,
    status = excluded.status,
    updated_at = excluded.updated_at
"""

INSERT_RECORD = """
INSERT INTO processor_records (processor_name, month, source_row, merchant_id, merchant_name, net,
                               sales_volume, transaction_count, group_code, branch_id, record_date)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

UPSERT_ROLE = """
INSERT INTO roles (id, name, type) VALUES (?, ?, ?)
ON CONFLICT(id) DO UPDATE SET name = excluded.name, type = excluded.type
"""

UPSERT_ASSIGNMENT = """
INSERT INTO assignments (merchant_id, role_id, month, role_type, percentage, rule_id, amount)
VALUES (?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(merchant_id, role_id, month, role_type) DO UPDATE SET
    percentage = excluded.percentage,
    rule_id = excluded.rule_id,
    amount = excluded.amount
"""

UPSERT_ISSUE = """
INSERT INTO audit_issues (id, run_id, merchant_id, month, type, severity, description,
                          status, resolved_by, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    severity = excluded.severity,
    description = excluded.description,
    status = excluded.status,
    resolved_by = excluded.resolved_by,
    updated_at = excluded.updated_at
"""


def _in_clause(values: List[str]) -> str:
    """Placeholder list for a parameterized IN (...) filter"""
    return ", ".join("?" for _ in values)


class SQLiteStore(ResidualsStore):
    """
    Store backed by a SQLite database file.

    Each public write runs in a single transaction. Statements are always
    parameterized.
    """

    def __init__(self, path: str = ":memory:", initialize: bool = True):
        self.path = path
        try:
            self.conn = sqlite3.connect(path)
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to open SQLite database {path}: {e}")
        self.conn.row_factory = sqlite3.Row
        if initialize:
            with self._transaction() as cursor:
                create_all_tables(cursor)
            logger.info("SQLite store ready", path=path)

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        cursor = self.conn.cursor()
        try:
            yield cursor
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise DatabaseError(f"SQLite operation failed: {e}")
        finally:
            cursor.close()

    def _query(self, sql: str, params: Iterable = ()) -> List[sqlite3.Row]:
        try:
            return self.conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(f"SQLite query failed: {e}")

    def close(self) -> None:
        self.conn.close()

    # Merchants

    def upsert_merchants(self, merchants: Iterable[Merchant]) -> None:
        rows = [
            (m.merchant_id, m.legal_name, m.dba, m.current_processor, m.branch_number,
             m.partner_name, m.status, m.created_at.isoformat(), m.updated_at.isoformat())
            for m in merchants
        ]
        with self._transaction() as cursor:
            cursor.executemany(UPSERT_MERCHANT, rows)

    def get_merchants(self, merchant_ids: Optional[Iterable[str]] = None) -> Dict[str, Merchant]:
        if merchant_ids is None:
            rows = self._query("SELECT * FROM merchants")
        else:
            ids = list(merchant_ids)
            if not ids:
                return {}
            rows = self._query(f"SELECT * FROM merchants WHERE merchant_id IN ({_in_clause(ids)})", ids)
        return {row['merchant_id']: _merchant_from_row(row) for row in rows}

    def fetch_merchant_ids(self) -> Set[str]:
        try:
            rows = self.conn.execute("SELECT merchant_id FROM merchants").fetchall()
        except sqlite3.OperationalError as e:
            raise MasterDataUnavailableError(f"Merchant master unavailable: {e}")
        return {row['merchant_id'] for row in rows}

    # Processor records

    def replace_processor_records(self, processor_name: str, month: str, records: List[ProcessorRecord]) -> None:
        rows = [
            (processor_name, month, r.source_row, r.merchant_id, r.merchant_name, str(r.net),
             str(r.sales_volume), r.transaction_count, r.group_code, r.branch_id, r.record_date)
            for r in records
        ]
        with self._transaction() as cursor:
            cursor.execute(
                "DELETE FROM processor_records WHERE processor_name = ? AND month = ?",
                (processor_name, month)
            )
            cursor.executemany(INSERT_RECORD, rows)

    def list_processor_records(
        self,
        month: Optional[str] = None,
        merchant_ids: Optional[Iterable[str]] = None
    ) -> List[ProcessorRecord]:
        clauses = []
        params: List[str] = []
        if month is not None:
            clauses.append("month = ?")
            params.append(month)
        if merchant_ids is not None:
            ids = list(merchant_ids)
            if not ids:
                return []
            clauses.append(f"merchant_id IN ({_in_clause(ids)})")
            params.extend(ids)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._query(
            f"SELECT * FROM processor_records{where} ORDER BY month, processor_name, source_row",
            params
        )
        return [_record_from_row(row) for row in rows]

    # Roles and assignments

    def upsert_roles(self, roles: Iterable[Role]) -> None:
        with self._transaction() as cursor:
            cursor.executemany(UPSERT_ROLE, [(r.id, r.name, r.type.value) for r in roles])

    def list_roles(self) -> List[Role]:
        rows = self._query("SELECT * FROM roles ORDER BY id")
        return [Role(id=row['id'], name=row['name'], type=row['type']) for row in rows]

    def upsert_assignments(self, assignments: Iterable[Assignment]) -> None:
        with self._transaction() as cursor:
            cursor.executemany(UPSERT_ASSIGNMENT, [_assignment_params(a) for a in assignments])

    def replace_assignments(self, merchant_id: str, month: str, assignments: Iterable[Assignment]) -> None:
        rows = [_assignment_params(a) for a in assignments]
        with self._transaction() as cursor:
            cursor.execute(
                "DELETE FROM assignments WHERE merchant_id = ? AND month = ? AND rule_id IS NOT NULL",
                (merchant_id, month)
            )
            cursor.executemany(UPSERT_ASSIGNMENT, rows)

    def list_assignments(self, month: str, merchant_ids: Optional[Iterable[str]] = None) -> List[Assignment]:
        sql = "SELECT * FROM assignments WHERE month = ?"
        params = [month]
        if merchant_ids is not None:
            ids = list(merchant_ids)
            if not ids:
                return []
            sql += f" AND merchant_id IN ({_in_clause(ids)})"
            params.extend(ids)
        rows = self._query(sql + " ORDER BY merchant_id, rowid", params)
        return [_assignment_from_row(row) for row in rows]

    # Audit issues

    def save_issues(self, issues: Iterable[AuditIssue]) -> None:
        with self._transaction() as cursor:
            cursor.executemany(UPSERT_ISSUE, [_issue_params(i) for i in issues])

    def get_issue(self, issue_id: str) -> Optional[AuditIssue]:
        rows = self._query("SELECT * FROM audit_issues WHERE id = ?", (issue_id,))
        return _issue_from_row(rows[0]) if rows else None

    def update_issue(self, issue: AuditIssue) -> None:
        self.save_issues([issue])

    def list_issues(self, month: Optional[str] = None, status: Optional[IssueStatus] = None) -> List[AuditIssue]:
        clauses = []
        params = []
        if month is not None:
            clauses.append("month = ?")
            params.append(month)
        if status is not None:
            clauses.append("status = ?")
            params.append(IssueStatus(status).value)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._query(f"SELECT * FROM audit_issues{where} ORDER BY created_at, id", params)
        return [_issue_from_row(row) for row in rows]


def _merchant_from_row(row: sqlite3.Row) -> Merchant:
    return Merchant(
        merchant_id=row['merchant_id'],
        legal_name=row['legal_name'],
        dba=row['dba'],
        current_processor=row['current_processor'],
        branch_number=row['branch_number'],
        partner_name=row['partner_name'],
        status=row['status'],
        created_at=datetime.fromisoformat(row['created_at']),
        updated_at=datetime.fromisoformat(row['updated_at'])
    )


def _record_from_row(row: sqlite3.Row) -> ProcessorRecord:
    return ProcessorRecord(
        merchant_id=row['merchant_id'],
        merchant_name=row['merchant_name'] or "",
        month=row['month'],
        net=Decimal(row['net']),
        sales_volume=Decimal(row['sales_volume']),
        transaction_count=row['transaction_count'],
        processor_name=row['processor_name'],
        group_code=row['group_code'],
        branch_id=row['branch_id'],
        record_date=row['record_date'],
        source_row=row['source_row']
    )


def _assignment_params(a: Assignment) -> tuple:
    return (
        a.merchant_id, a.role_id, a.month, a.role_type.value, str(a.percentage),
        a.rule_id.value if a.rule_id else None,
        str(a.amount) if a.amount is not None else None
    )


def _assignment_from_row(row: sqlite3.Row) -> Assignment:
    return Assignment(
        merchant_id=row['merchant_id'],
        role_id=row['role_id'],
        month=row['month'],
        percentage=Decimal(row['percentage']),
        role_type=row['role_type'],
        rule_id=row['rule_id'],
        amount=Decimal(row['amount']) if row['amount'] is not None else None
    )


def _issue_params(issue: AuditIssue) -> tuple:
    return (
        issue.id, issue.run_id, issue.merchant_id, issue.month, issue.type.value,
        issue.severity.value, issue.description, issue.status.value, issue.resolved_by,
        issue.created_at.isoformat(), issue.updated_at.isoformat()
    )


def _issue_from_row(row: sqlite3.Row) -> AuditIssue:
    return AuditIssue(
        id=row['id'],
        run_id=row['run_id'],
        merchant_id=row['merchant_id'],
        month=row['month'],
        type=row['type'],
        severity=row['severity'],
        description=row['description'],
        status=row['status'],
        resolved_by=row['resolved_by'],
        created_at=datetime.fromisoformat(row['created_at']),
        updated_at=datetime.fromisoformat(row['updated_at'])
    )
