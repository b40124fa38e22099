"""Tests for rule selection and split tables"""

import copy
import pytest
from decimal import Decimal

from residual_audit.constants import RoleType, RuleId
from residual_audit.models import ProcessorRecord
from residual_audit.tools.assignment_resolver import AssignmentResolver, RuleBook, payout
from residual_audit.utils.config_loader import load_config
from residual_audit.utils.errors import ConfigurationError


@pytest.fixture
def config():
    return load_config()


@pytest.fixture
def resolver(config):
    return AssignmentResolver(RuleBook.from_config(config))


def make_record(**overrides) -> ProcessorRecord:
    data = dict(
        merchant_id="M1",
        merchant_name="TACO HUT",
        month="2025-05",
        net=Decimal("100.00"),
        processor_name="Clearent",
    )
    data.update(overrides)
    return ProcessorRecord(**data)


def test_standard_split(resolver):
    """Plain merchant: agent 70, sales manager 20, association 10"""
    record = make_record()

    rule = resolver.resolve_rule(record)
    assignments = resolver.assignments_for(record, rule)

    assert rule == RuleId.STANDARD
    assert [(a.role_type, a.percentage, a.amount) for a in assignments] == [
        (RoleType.AGENT, Decimal("70"), Decimal("70.00")),
        (RoleType.SALES_MANAGER, Decimal("20"), Decimal("20.00")),
        (RoleType.ASSOCIATION, Decimal("10"), Decimal("10.00")),
    ]
    assert sum(a.percentage for a in assignments) == Decimal("100")
    assert all(a.merchant_id == "M1" and a.month == "2025-05" for a in assignments)


def test_group_code_selects_partner_a(resolver):
    record = make_record(merchant_id="M2", net=Decimal("1000.00"), group_code="HBS-1")

    rule = resolver.resolve_rule(record)
    assignments = resolver.assignments_for(record, rule)

    assert rule == RuleId.PARTNER_A
    assert [(a.role_type, a.percentage) for a in assignments] == [
        (RoleType.PARTNER, Decimal("40")),
        (RoleType.SALES_MANAGER, Decimal("30")),
        (RoleType.AGENT, Decimal("20")),
        (RoleType.ASSOCIATION, Decimal("10")),
    ]
    assert [a.amount for a in assignments] == [
        Decimal("400.00"), Decimal("300.00"), Decimal("200.00"), Decimal("100.00")
    ]
    # Sales manager and agent shares go to the same person
    assert assignments[1].role_id == assignments[2].role_id
    assert len({a.natural_key for a in assignments}) == 4


def test_partner_indicator_is_not_revenue_gated(resolver):
    assert resolver.resolve_rule(make_record(net=Decimal("0"), group_code="HBS-1")) == RuleId.PARTNER_A
    assert resolver.resolve_rule(make_record(net=Decimal("-40"), branch_id="0827")) == RuleId.PARTNER_A


def test_co_owned_entity_selects_partner_b(resolver):
    assert resolver.resolve_rule(make_record(processor_name="Micamp Solutions")) == RuleId.PARTNER_B
    assert resolver.resolve_rule(make_record(merchant_name="c2fs Auto Repair")) == RuleId.PARTNER_B

    assignments = resolver.assignments_for(make_record(), RuleId.PARTNER_B)
    assert [a.percentage for a in assignments] == [Decimal("45"), Decimal("35"), Decimal("10"), Decimal("10")]


def test_high_revenue_on_flagged_processor(resolver):
    assert resolver.resolve_rule(make_record(processor_name="TRX", net=Decimal("1500"))) == RuleId.PARTNER_A
    assert resolver.resolve_rule(make_record(processor_name="TRX", net=Decimal("1000"))) == RuleId.STANDARD
    assert resolver.resolve_rule(make_record(processor_name="Clearent", net=Decimal("5000"))) == RuleId.STANDARD


def test_first_matching_rule_wins(resolver):
    record = make_record(processor_name="Micamp Solutions", group_code="HBS-1")
    assert resolver.resolve_rule(record) == RuleId.PARTNER_A


def test_resolution_is_pure(resolver):
    record = make_record(group_code="HBS-1")
    first = resolver.assignments_for(record, resolver.resolve_rule(record))
    second = resolver.assignments_for(record, resolver.resolve_rule(record))
    assert first == second


def test_merchant_month_uses_highest_priority_rule_and_summed_net(resolver):
    records = [
        make_record(net=Decimal("60.00")),
        make_record(net=Decimal("40.00"), branch_id="0827", source_row=2),
    ]

    assignments = resolver.resolve_merchant_month(records)

    assert {a.rule_id for a in assignments} == {RuleId.PARTNER_A}
    assert assignments[0].amount == Decimal("40.00")


def test_payout_rounds_to_cents():
    assert payout(Decimal("33.33"), Decimal("10")) == Decimal("3.33")
    assert payout(Decimal("0.05"), Decimal("70")) == Decimal("0.04")


def test_rule_tables_total_100(config):
    book = RuleBook.from_config(config)
    for rule_id in RuleId:
        assert book.table(rule_id).total == Decimal("100")


def test_broken_rule_table_fails_at_load(config):
    broken = copy.deepcopy(config)
    broken['rules']['standard'][0]['percentage'] = 65

    with pytest.raises(ConfigurationError, match="total 95"):
        RuleBook.from_config(broken)

    with pytest.raises(ConfigurationError):
        AssignmentResolver(config=broken)


def test_undeclared_role_fails_at_load(config):
    broken = copy.deepcopy(config)
    broken['rules']['partner_b'][0]['role'] = 'nobody'

    with pytest.raises(ConfigurationError, match="undeclared role"):
        RuleBook.from_config(broken)


def test_missing_or_unknown_rule_fails_at_load(config):
    missing = copy.deepcopy(config)
    del missing['rules']['partner_b']
    with pytest.raises(ConfigurationError, match="Missing rule tables"):
        RuleBook.from_config(missing)

    unknown = copy.deepcopy(config)
    unknown['rules']['partner_c'] = unknown['rules']['standard']
    with pytest.raises(ConfigurationError, match="Unknown rule"):
        RuleBook.from_config(unknown)


def test_rule_book_is_read_only(config):
    book = RuleBook.from_config(config)
    with pytest.raises(TypeError):
        book.tables[RuleId.STANDARD] = None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
