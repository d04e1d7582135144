"""Tests for app.core.rule_expressions: the constrained rule language."""

import pytest

from app.core.rule_expressions import (
    Binary,
    ExpressionSyntaxError,
    Literal,
    Path,
    UnsafeExpressionError,
    evaluate_expression,
    parse_expression,
    resolve_path,
    tokenize,
)

CTX = {
    "model": "saas-b2b",
    "saturationPct": 85,
    "dimensions10": {"problem": 6, "demand": 2.5, "economics": 4},
    "flags": ["MARKETPLACE_CATEGORY", "HIGH_CAC"],
    "region": {"name": "emea", "regulated": True},
    "count": 0,
}


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def test_tokenize_drops_whitespace():
    tokens = tokenize("a.b >= 3 && c")
    assert [t.kind for t in tokens] == ["PATH", "OP", "NUMBER", "OP", "PATH"]
    assert [t.text for t in tokens] == ["a.b", ">=", "3", "&&", "c"]


def test_parse_builds_ast_with_precedence():
    """&& binds tighter than ||."""
    node = parse_expression("a == 1 || b == 2 && c == 3")
    assert isinstance(node, Binary) and node.op == "||"
    assert isinstance(node.right, Binary) and node.right.op == "&&"
    assert node.left == Binary("==", Path(("a",)), Literal(1))


def test_parse_literals():
    assert parse_expression("true") == Literal(True)
    assert parse_expression("null") == Literal(None)
    assert parse_expression("'saas-b2b'") == Literal("saas-b2b")
    assert parse_expression("2.5") == Literal(2.5)


def test_parse_is_cached():
    assert parse_expression("model == 'x'") is parse_expression("model == 'x'")


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "expr,expected",
    [
        ("model == 'saas-b2b' && saturationPct > 80", True),
        ("model == 'saas-b2b' && saturationPct > 90", False),
        ("model == 'saas-b2c' || saturationPct >= 85", True),
        ("dimensions10.demand < 3", True),
        ("dimensions10.economics <= 4 && dimensions10.problem != 6", False),
        ("!(model == 'general')", True),
        ("!region.regulated", False),
        ("region.name == 'emea'", True),
        ("flags.1 == 'HIGH_CAC'", True),
        ("saturationPct > -1", True),
        ("(saturationPct > 90 || dimensions10.demand < 3) && model != 'general'", True),
        ("true || false && false", True),
        ("count", False),
        ("region", True),
        ("'b' > 'a'", True),
    ],
)
def test_evaluate_expression(expr, expected):
    assert evaluate_expression(expr, CTX) is expected


def test_missing_paths_resolve_to_null():
    """Optional fields degrade to false comparisons instead of raising."""
    assert evaluate_expression("missing.field > 1", CTX) is False
    assert evaluate_expression("missing.field == null", CTX) is True
    assert evaluate_expression("dimensions10.gtm >= 0", CTX) is False


def test_mixed_type_ordering_is_false():
    assert evaluate_expression("model > 3", CTX) is False
    assert evaluate_expression("region.regulated >= 1", CTX) is False


def test_boolean_not_equal_to_number():
    assert evaluate_expression("region.regulated == 1", CTX) is False
    assert evaluate_expression("region.regulated == true", CTX) is True


def test_paths_only_read_mapping_keys():
    """No attribute access: dunder names resolve like any missing key."""
    assert resolve_path(CTX, ("model", "__class__")) is None
    assert evaluate_expression("model.__class__ == null", CTX) is True
    assert evaluate_expression("model.upper == null", CTX) is True


# ---------------------------------------------------------------------------
# Safety
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "expr",
    [
        "model == `saas-b2b`",
        'model == "saas-b2b"',
        "model == 'x'; import os",
        "saturationPct + 1 > 2",
        "flags[0] == 'x'",
        "{} == 1",
        "a == 'ünïcode'",
        "x == 1 ## comment",
    ],
)
def test_unsafe_characters_rejected(expr):
    with pytest.raises(UnsafeExpressionError):
        parse_expression(expr)


@pytest.mark.parametrize(
    "expr",
    [
        "model = 'saas-b2b'",
        "len(model)",
        "model ==",
        "(model == 'x'",
        "model == 'x')",
        "a..b == 1",
        "a: 1",
        "",
        "   ",
        "model == 'x' model",
    ],
)
def test_malformed_expressions_rejected(expr):
    with pytest.raises(ExpressionSyntaxError):
        parse_expression(expr)


def test_deep_nesting_rejected():
    expr = "(" * 100 + "1" + ")" * 100
    with pytest.raises(UnsafeExpressionError):
        parse_expression(expr)


def test_oversized_expression_rejected():
    expr = " || ".join(["a == 1"] * 500)
    with pytest.raises(UnsafeExpressionError):
        parse_expression(expr)


@pytest.mark.parametrize(
    "expr",
    [
        "<".join(["1"] * 1000),
        " && ".join(["1"] * 300),
        " || ".join(["count"] * 200),
        "==".join(["1"] * 500),
    ],
)
def test_long_flat_operator_chain_rejected(expr):
    """Chains inside the length cap are still bounded by operator count."""
    assert len(expr) <= 2000
    with pytest.raises(UnsafeExpressionError):
        evaluate_expression(expr, CTX)


def test_operator_chain_at_limit_evaluates():
    expr = " && ".join(["true"] * 129)
    assert evaluate_expression(expr, CTX) is True
    with pytest.raises(UnsafeExpressionError):
        parse_expression(" && ".join(["true"] * 130))
