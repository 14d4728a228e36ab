import pytest

from statement_ledger.core.errors import UnsafePatternError
from statement_ledger.models import (
    ClassifiedTransaction,
    FlowType,
    Rule,
    RuleActionType,
    RuleMatchField,
    RuleMatchType,
    SourceType,
)
from statement_ledger.rules.matching import (
    compile_rule_pattern,
    get_matching_rules,
    matches_rule,
    safe_regex_search,
    string_match_candidates,
    validate_pattern,
)


def make_tx(description="KIWI 505 STORO", amount=-245.5, merchant=None, **kwargs):
    return ClassifiedTransaction(
        date="2026-01-05",
        description=description,
        merchant=merchant,
        amount=amount,
        source_type=kwargs.pop("source_type", SourceType.PDF),
        flow_type=kwargs.pop("flow_type", FlowType.EXPENSE),
        **kwargs,
    )


def make_rule(match_type, match_value, field=RuleMatchField.DESCRIPTION, **kwargs):
    return Rule(
        id=kwargs.pop("id", "r1"),
        name=kwargs.pop("name", "rule"),
        match_field=field,
        match_type=match_type,
        match_value=match_value,
        action_type=kwargs.pop("action_type", RuleActionType.SET_CATEGORY),
        action_value=kwargs.pop("action_value", "groceries"),
        **kwargs,
    )


@pytest.mark.parametrize(
    ("match_type", "value", "expected"),
    [
        (RuleMatchType.CONTAINS, "kiwi", True),
        (RuleMatchType.CONTAINS, "rema", False),
        (RuleMatchType.STARTS_WITH, "Kiwi 505", True),
        (RuleMatchType.ENDS_WITH, "storo", True),
        (RuleMatchType.EXACT, "kiwi 505 storo", True),
        (RuleMatchType.EXACT, "kiwi", False),
        (RuleMatchType.REGEX, r"^kiwi\s+\d+", True),
        (RuleMatchType.REGEX, r"(?<=KIWI) 505", False),
        (RuleMatchType.REGEX, "[unclosed", False),
    ],
)
def test_string_match_types(match_type, value, expected):
    assert matches_rule(make_tx(), make_rule(match_type, value)) is expected


def test_string_rules_see_merchant_and_description():
    tx = make_tx(description="Varekjøp 1234", merchant="Rema 1000")

    assert string_match_candidates(tx, RuleMatchField.DESCRIPTION) == [
        "Rema 1000 Varekjøp 1234",
        "Varekjøp 1234",
        "Rema 1000",
    ]
    assert matches_rule(tx, make_rule(RuleMatchType.STARTS_WITH, "rema"))
    assert matches_rule(tx, make_rule(RuleMatchType.EXACT, "varekjøp 1234"))


def test_rules_match_the_canonical_merchant_name():
    tx = make_tx(description="www.clasohlson.com/no")

    assert "CLAS OHLSON" in string_match_candidates(tx, RuleMatchField.MERCHANT)
    assert matches_rule(tx, make_rule(RuleMatchType.EXACT, "clas ohlson", field=RuleMatchField.MERCHANT))
    assert not matches_rule(tx, make_rule(RuleMatchType.EXACT, "clas ohlson", field=RuleMatchField.STATUS))


def test_code_like_merchant_adds_no_candidate():
    tx = make_tx(description="12345678")

    assert string_match_candidates(tx, RuleMatchField.DESCRIPTION) == ["12345678"]


def test_string_match_on_source_type_field():
    tx = make_tx(source_type=SourceType.XLSX)
    assert matches_rule(tx, make_rule(RuleMatchType.EXACT, "xlsx", field=RuleMatchField.SOURCE_TYPE))


@pytest.mark.parametrize(
    ("match_type", "value", "secondary", "amount", "expected"),
    [
        (RuleMatchType.GREATER_THAN, "100", None, 150.0, True),
        (RuleMatchType.GREATER_THAN, "100", None, 100.0, False),
        (RuleMatchType.LESS_THAN, "0", None, -1.0, True),
        (RuleMatchType.BETWEEN, "-300", "-200", -245.5, True),
        (RuleMatchType.BETWEEN, "-300", "-200", -100.0, False),
        (RuleMatchType.BETWEEN, "-200", "-300", -245.5, False),
        (RuleMatchType.BETWEEN, "50", None, 50.0, True),
        (RuleMatchType.BETWEEN, "50", "", 51.0, False),
        (RuleMatchType.BETWEEN, "10", "abc", 20.0, False),
        (RuleMatchType.GREATER_THAN, "abc", None, 20.0, False),
    ],
)
def test_numeric_match_types(match_type, value, secondary, amount, expected):
    rule = make_rule(match_type, value, field=RuleMatchField.AMOUNT, match_value_secondary=secondary)
    assert matches_rule(make_tx(amount=amount), rule) is expected


def test_field_and_operator_kinds_must_agree():
    tx = make_tx(description="100", amount=150.0)
    assert not matches_rule(tx, make_rule(RuleMatchType.GREATER_THAN, "100"))
    assert not matches_rule(tx, make_rule(RuleMatchType.CONTAINS, "150", field=RuleMatchField.AMOUNT))


def test_validate_pattern_rejects_unsafe_patterns():
    validate_pattern(r"kiwi\d{1,3}")
    with pytest.raises(UnsafePatternError):
        validate_pattern("a" * 201)
    with pytest.raises(UnsafePatternError):
        validate_pattern(r"(?!rema)kiwi")
    with pytest.raises(UnsafePatternError):
        validate_pattern(r"a{1000}")
    with pytest.raises(UnsafePatternError):
        validate_pattern(r"a{2,5000}")


def test_compile_rule_pattern_is_cached_and_case_insensitive():
    first = compile_rule_pattern("netflix")
    assert compile_rule_pattern("netflix") is first
    assert first.search("NETFLIX.COM")
    with pytest.raises(UnsafePatternError):
        compile_rule_pattern("(")


def test_safe_regex_search_never_raises():
    assert safe_regex_search("kiwi", "Kiwi")
    assert not safe_regex_search("(", "(")


def test_get_matching_rules_orders_by_priority_and_skips_disabled():
    rules = [
        make_rule(RuleMatchType.CONTAINS, "kiwi", id="late", priority=200, action_value="food"),
        make_rule(RuleMatchType.CONTAINS, "kiwi", id="off", priority=1, enabled=False),
        make_rule(RuleMatchType.CONTAINS, "kiwi", id="early", priority=10, action_value="groceries"),
        make_rule(RuleMatchType.CONTAINS, "kiwi", id="tie", priority=10, action_type=RuleActionType.ADD_TAG, action_value="t"),
        make_rule(RuleMatchType.CONTAINS, "rema", id="miss", priority=5),
    ]

    actions = get_matching_rules(make_tx(), rules)

    assert [action.rule_id for action in actions] == ["early", "tie", "late"]
    assert actions[0].type == RuleActionType.SET_CATEGORY
    assert actions[0].value == "groceries"
