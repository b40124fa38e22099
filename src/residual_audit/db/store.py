"""Persistence boundary for merchants, records, assignments and audit issues"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Set, Tuple

from residual_audit.constants import IssueStatus
from residual_audit.models import Assignment, AuditIssue, Merchant, ProcessorRecord, Role


class ResidualsStore(ABC):
    """
    Store contract used by the pipeline and audit engine.

    Every write is an upsert keyed by natural identifiers, and every batch
    write either commits entirely or not at all.
    """

    # Merchants
    @abstractmethod
    def upsert_merchants(self, merchants: Iterable[Merchant]) -> None:
        ...

    @abstractmethod
    def get_merchants(self, merchant_ids: Optional[Iterable[str]] = None) -> Dict[str, Merchant]:
        ...

    @abstractmethod
    def fetch_merchant_ids(self) -> Set[str]:
        """All master MIDs; raises MasterDataUnavailableError if the master cannot be read"""

    # Processor records
    @abstractmethod
    def replace_processor_records(self, processor_name: str, month: str, records: List[ProcessorRecord]) -> None:
        """Supersede everything stored for processor_name + month"""

    @abstractmethod
    def list_processor_records(
        self,
        month: Optional[str] = None,
        merchant_ids: Optional[Iterable[str]] = None
    ) -> List[ProcessorRecord]:
        ...

    # Roles and assignments
    @abstractmethod
    def upsert_roles(self, roles: Iterable[Role]) -> None:
        ...

    @abstractmethod
    def list_roles(self) -> List[Role]:
        ...

    @abstractmethod
    def upsert_assignments(self, assignments: Iterable[Assignment]) -> None:
        ...

    @abstractmethod
    def replace_assignments(self, merchant_id: str, month: str, assignments: Iterable[Assignment]) -> None:
        """Drop the merchant-month's rule-derived rows, then upsert the new set; manual rows stay"""

    @abstractmethod
    def list_assignments(self, month: str, merchant_ids: Optional[Iterable[str]] = None) -> List[Assignment]:
        ...

    # Audit issues
    @abstractmethod
    def save_issues(self, issues: Iterable[AuditIssue]) -> None:
        ...

    @abstractmethod
    def get_issue(self, issue_id: str) -> Optional[AuditIssue]:
        ...

    @abstractmethod
    def update_issue(self, issue: AuditIssue) -> None:
        ...

    @abstractmethod
    def list_issues(self, month: Optional[str] = None, status: Optional[IssueStatus] = None) -> List[AuditIssue]:
        ...


class InMemoryStore(ResidualsStore):
    """Dictionary-backed store for tests and single-process runs"""

    def __init__(self):
        self.merchants: Dict[str, Merchant] = {}
        self.records: Dict[Tuple[str, str], List[ProcessorRecord]] = {}
        self.roles: Dict[str, Role] = {}
        self.assignments: Dict[Tuple[str, str, str, str], Assignment] = {}
        self.issues: Dict[str, AuditIssue] = {}

    def upsert_merchants(self, merchants: Iterable[Merchant]) -> None:
        for merchant in list(merchants):
            self.merchants[merchant.merchant_id] = merchant.model_copy()

    def get_merchants(self, merchant_ids: Optional[Iterable[str]] = None) -> Dict[str, Merchant]:
        if merchant_ids is None:
            return {k: v.model_copy() for k, v in self.merchants.items()}
        return {k: self.merchants[k].model_copy() for k in merchant_ids if k in self.merchants}

    def fetch_merchant_ids(self) -> Set[str]:
        return set(self.merchants)

    def replace_processor_records(self, processor_name: str, month: str, records: List[ProcessorRecord]) -> None:
        self.records[(processor_name, month)] = list(records)

    def list_processor_records(
        self,
        month: Optional[str] = None,
        merchant_ids: Optional[Iterable[str]] = None
    ) -> List[ProcessorRecord]:
        wanted = set(merchant_ids) if merchant_ids is not None else None
        result = []
        for (_, record_month), records in sorted(self.records.items(), key=lambda item: (item[0][1], item[0][0])):
            if month is not None and record_month != month:
                continue
            result.extend(r for r in records if wanted is None or r.merchant_id in wanted)
        return result

    def upsert_roles(self, roles: Iterable[Role]) -> None:
        for role in roles:
            self.roles[role.id] = role

    def list_roles(self) -> List[Role]:
        return sorted(self.roles.values(), key=lambda r: r.id)

    def upsert_assignments(self, assignments: Iterable[Assignment]) -> None:
        for assignment in list(assignments):
            self.assignments[assignment.natural_key] = assignment

    def replace_assignments(self, merchant_id: str, month: str, assignments: Iterable[Assignment]) -> None:
        batch = list(assignments)
        stale = [
            key for key, a in self.assignments.items()
            if a.merchant_id == merchant_id and a.month == month and a.rule_id is not None
        ]
        for key in stale:
            del self.assignments[key]
        self.upsert_assignments(batch)

    def list_assignments(self, month: str, merchant_ids: Optional[Iterable[str]] = None) -> List[Assignment]:
        wanted = set(merchant_ids) if merchant_ids is not None else None
        return [
            a for a in self.assignments.values()
            if a.month == month and (wanted is None or a.merchant_id in wanted)
        ]

    def save_issues(self, issues: Iterable[AuditIssue]) -> None:
        batch = {issue.id: issue.model_copy() for issue in issues}
        self.issues.update(batch)

    def get_issue(self, issue_id: str) -> Optional[AuditIssue]:
        issue = self.issues.get(issue_id)
        return issue.model_copy() if issue else None

    def update_issue(self, issue: AuditIssue) -> None:
        self.issues[issue.id] = issue.model_copy()

    def list_issues(self, month: Optional[str] = None, status: Optional[IssueStatus] = None) -> List[AuditIssue]:
        return [
            issue.model_copy() for issue in self.issues.values()
            if (month is None or issue.month == month) and (status is None or issue.status == status)
        ]
