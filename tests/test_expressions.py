# tests/test_expressions.py
import pytest

from matterflow.core.expressions import ExpressionError, evaluate_expression, parse_expression

CONTEXT = {
    "client": {"type": "corporate", "name": "Acme Holdings", "tags": ["priority", "cross-border"]},
    "claim_value": 250000,
    "jurisdiction": "NY",
    "settled": False,
    "notes": "",
}


@pytest.mark.parametrize("expression, expected", [
    ("client.type == 'corporate'", True),
    ("client.type != 'corporate'", False),
    ("claim_value > 100000", True),
    ("claim_value <= 100000", False),
    ("jurisdiction IN ['NY', 'NJ']", True),
    ("client.tags CONTAINS 'cross-border'", True),
    ("client.name CONTAINS 'Holdings'", True),
    ("settled == false", True),
    ("notes IS EMPTY", True),
    ("client.type IS NOT EMPTY", True),
    ("claim_value > 1000000 OR jurisdiction == 'NY'", True),
    ("claim_value > 1000000 OR jurisdiction == 'CA' AND settled == false", False),
    ("(claim_value > 1000000 OR jurisdiction == 'NY') AND settled == false", True),
    ("client.type == \"corporate\" and claim_value >= 250000", True),
])
def test_evaluate_expression(expression, expected):
    assert evaluate_expression(expression, CONTEXT) is expected


def test_missing_field_is_false_and_empty():
    assert evaluate_expression("client.industry == 'energy'", CONTEXT) is False
    assert evaluate_expression("client.industry != 'energy'", CONTEXT) is False
    assert evaluate_expression("client.industry IS EMPTY", CONTEXT) is True


def test_mismatched_ordering_is_false():
    assert evaluate_expression("jurisdiction > 5", CONTEXT) is False
    assert evaluate_expression("claim_value < 'abc'", CONTEXT) is False


@pytest.mark.parametrize("expression", [
    "",
    "   ",
    "claim_value >",
    "claim_value 5",
    "(claim_value > 5",
    "claim_value > 5)",
    "jurisdiction IN 'NY'",
    "notes IS BLANK",
    "claim_value > 5 AND",
    "claim_value ~ 5",
    "'literal' == claim_value",
])
def test_parse_errors(expression):
    with pytest.raises(ExpressionError):
        parse_expression(expression)


def test_nesting_is_bounded():
    expression = "(" * 40 + "claim_value > 1" + ")" * 40
    with pytest.raises(ExpressionError, match="nested too deeply"):
        parse_expression(expression)


def test_error_reports_position():
    with pytest.raises(ExpressionError) as exc_info:
        parse_expression("claim_value > 5 AND ?")
    assert exc_info.value.position == 20
