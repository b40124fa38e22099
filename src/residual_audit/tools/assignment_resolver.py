"""Rule-based residual split resolution"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from residual_audit.constants import RoleType, RuleId, SPLIT_TOTAL
from residual_audit.models import Assignment, ProcessorRecord, Role
from residual_audit.utils.config_loader import load_config, get_section
from residual_audit.utils.errors import ConfigurationError
from residual_audit.utils.logging import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")

# Evaluation order of RuleId is the priority order
RULE_PRIORITY: Tuple[RuleId, ...] = tuple(RuleId)


@dataclass(frozen=True)
class RuleShare:
    """One row of a split table"""
    role_id: str
    role_type: RoleType
    percentage: Decimal


@dataclass(frozen=True)
class RuleTable:
    """Immutable split table for one rule"""
    rule_id: RuleId
    shares: Tuple[RuleShare, ...]

    @property
    def total(self) -> Decimal:
        return sum((share.percentage for share in self.shares), Decimal("0"))


@dataclass(frozen=True)
class SelectionCriteria:
    co_owned_processors: Tuple[str, ...] = ()
    co_owned_name_indicators: Tuple[str, ...] = ()
    high_revenue_processors: Tuple[str, ...] = ()
    high_revenue_threshold: Decimal = Decimal("1000")


class RuleBook:
    """
    Validated rule tables and selection criteria.

    Built once from configuration. Every table must total exactly 100 and
    reference declared roles only; anything else fails at load time so a
    broken table can never produce a split.
    """

    def __init__(
        self,
        roles: Mapping[str, Role],
        tables: Mapping[RuleId, RuleTable],
        criteria: SelectionCriteria
    ):
        self.roles = MappingProxyType(dict(roles))
        self.tables = MappingProxyType(dict(tables))
        self.criteria = criteria

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RuleBook":
        """
        Build a rule book from the loaded YAML configuration

        Raises:
            ConfigurationError: On unknown rules/roles, bad percentages or tables not totalling 100
        """
        roles = _parse_roles(config.get('roles') or [])

        raw_rules = config.get('rules') or {}
        tables = {}
        for rule_key, raw_shares in raw_rules.items():
            try:
                rule_id = RuleId(rule_key)
            except ValueError:
                raise ConfigurationError(f"Unknown rule '{rule_key}' in rule tables")
            tables[rule_id] = _parse_table(rule_id, raw_shares or [], roles)

        missing = [rule.value for rule in RuleId if rule not in tables]
        if missing:
            raise ConfigurationError(f"Missing rule tables: {missing}")

        selection = get_section(config, 'rule_selection')
        try:
            threshold = Decimal(str(selection.get('high_revenue_threshold', 1000)))
        except InvalidOperation:
            raise ConfigurationError(
                f"Invalid high_revenue_threshold: {selection.get('high_revenue_threshold')}"
            )
        criteria = SelectionCriteria(
            co_owned_processors=tuple(selection.get('co_owned_processors') or ()),
            co_owned_name_indicators=tuple(selection.get('co_owned_name_indicators') or ()),
            high_revenue_processors=tuple(selection.get('high_revenue_processors') or ()),
            high_revenue_threshold=threshold
        )

        logger.info("Rule book loaded", rules=len(tables), roles=len(roles))
        return cls(roles, tables, criteria)

    def table(self, rule_id: RuleId) -> RuleTable:
        return self.tables[rule_id]


def _parse_roles(raw_roles: Iterable[Dict[str, Any]]) -> Dict[str, Role]:
    roles = {}
    for raw in raw_roles:
        try:
            role = Role(id=raw['id'], name=raw.get('name', raw['id']), type=raw['type'])
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid role declaration {raw}: {e}")
        if role.id in roles:
            raise ConfigurationError(f"Duplicate role id '{role.id}'")
        roles[role.id] = role
    return roles


def _parse_table(rule_id: RuleId, raw_shares: Iterable[Dict[str, Any]], roles: Mapping[str, Role]) -> RuleTable:
    shares = []
    seen = set()
    for raw in raw_shares:
        try:
            role_id = raw['role']
            role_type = RoleType(raw['role_type'])
            percentage = Decimal(str(raw['percentage']))
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            raise ConfigurationError(f"Invalid share {raw} in rule '{rule_id.value}': {e}")

        if role_id not in roles:
            raise ConfigurationError(f"Rule '{rule_id.value}' references undeclared role '{role_id}'")
        if percentage < 0 or percentage > SPLIT_TOTAL:
            raise ConfigurationError(
                f"Rule '{rule_id.value}' share for '{role_id}' out of range: {percentage}"
            )
        if (role_id, role_type) in seen:
            raise ConfigurationError(
                f"Rule '{rule_id.value}' lists '{role_id}' as {role_type.value} twice"
            )
        seen.add((role_id, role_type))
        shares.append(RuleShare(role_id=role_id, role_type=role_type, percentage=percentage))

    table = RuleTable(rule_id=rule_id, shares=tuple(shares))
    if table.total != SPLIT_TOTAL:
        raise ConfigurationError(
            f"Rule '{rule_id.value}' percentages total {table.total}, expected {SPLIT_TOTAL}"
        )
    return table


class AssignmentResolver:
    """Selects a rule per record and expands it into assignments"""

    def __init__(self, rule_book: Optional[RuleBook] = None, config: Optional[Dict[str, Any]] = None):
        if rule_book is None:
            rule_book = RuleBook.from_config(config if config is not None else load_config())
        self.rule_book = rule_book

    def resolve_rule(self, record: ProcessorRecord) -> RuleId:
        """
        Pick the split rule for a record; first match wins.

        1. group code or branch id present -> PARTNER_A, whatever the revenue
        2. co-owned processor, or co-owned indicator in the merchant name -> PARTNER_B
        3. net above threshold on a high-revenue processor -> PARTNER_A
        4. otherwise STANDARD
        """
        criteria = self.rule_book.criteria

        if record.has_partner_indicator:
            return RuleId.PARTNER_A

        processor = record.processor_name.strip().lower()
        if processor in {p.lower() for p in criteria.co_owned_processors}:
            return RuleId.PARTNER_B

        merchant_name = record.merchant_name.upper()
        if any(indicator.upper() in merchant_name for indicator in criteria.co_owned_name_indicators):
            return RuleId.PARTNER_B

        if (processor in {p.lower() for p in criteria.high_revenue_processors}
                and record.net > criteria.high_revenue_threshold):
            return RuleId.PARTNER_A

        return RuleId.STANDARD

    def assignments_for(
        self,
        record: ProcessorRecord,
        rule_id: RuleId,
        net: Optional[Decimal] = None
    ) -> List[Assignment]:
        """
        Expand a rule into one assignment per share.

        Args:
            record: Record identifying the merchant and month
            rule_id: Rule selected for the merchant-month
            net: Payout base; defaults to the record's own net

        Returns:
            Assignments in rule-table order, percentages summing to 100
        """
        base = record.net if net is None else net
        return [
            Assignment(
                merchant_id=record.merchant_id,
                role_id=share.role_id,
                month=record.month,
                percentage=share.percentage,
                role_type=share.role_type,
                rule_id=rule_id,
                amount=payout(base, share.percentage)
            )
            for share in self.rule_book.table(rule_id).shares
        ]

    def resolve_merchant_month(self, records: List[ProcessorRecord]) -> List[Assignment]:
        """
        Resolve all records of one merchant in one month.

        The highest-priority rule matched by any record applies and payouts are
        computed on the merchant's summed net.
        """
        if not records:
            return []
        matched = [(RULE_PRIORITY.index(self.resolve_rule(r)), r) for r in records]
        _, winner = min(matched, key=lambda item: item[0])
        rule_id = self.resolve_rule(winner)
        total_net = sum((r.net for r in records), Decimal("0"))
        return self.assignments_for(winner, rule_id, net=total_net)


def payout(net: Decimal, percentage: Decimal) -> Decimal:
    """Share of net for a percentage, rounded to cents"""
    return (net * percentage / SPLIT_TOTAL).quantize(CENT, rounding=ROUND_HALF_UP)
