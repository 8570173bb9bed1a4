import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from statement_engine.errors import ExpressionSyntaxError
from statement_engine.expressions import (
    Binary,
    ExpressionCache,
    ExpressionFailure,
    FailureKind,
    Number,
    OrderRef,
    Unary,
    Variable,
    evaluate,
    get_dependencies,
    is_order_reference,
    parse,
    tokenize,
    validate,
)


def test_tokenize_positions_and_types() -> None:
    tokens = tokenize("revenue - @10 * 2.5")

    assert [t.type for t in tokens] == [
        "identifier",
        "operator",
        "order",
        "operator",
        "number",
    ]
    assert [t.value for t in tokens] == ["revenue", "-", "@10", "*", "2.5"]
    assert [t.position for t in tokens] == [0, 8, 10, 14, 16]


@pytest.mark.parametrize(
    "expression", ["revenue $ 2", "@ + 1", "10 @x", "1.2.3", "2²", "@²", "٣ + 1"]
)
def test_tokenize_rejects_invalid_input(expression) -> None:
    with pytest.raises(ExpressionSyntaxError) as excinfo:
        tokenize(expression)
    assert excinfo.value.kind == FailureKind.INVALID_TOKEN.value


def test_non_ascii_digits_are_failure_values() -> None:
    result = evaluate("2²", {})

    assert isinstance(result, ExpressionFailure)
    assert result.kind is FailureKind.INVALID_TOKEN
    assert result.position == 1
    assert not is_order_reference("@²")
    assert is_order_reference("@10")


@settings(max_examples=300, deadline=None)
@given(
    st.one_of(
        st.text(max_size=40),
        st.text(alphabet="0123456789.@+-*/() abx_²٣", max_size=40),
    )
)
def test_evaluate_never_raises(expression) -> None:
    result = evaluate(expression, {"a": 2.0, "b": 0.0, "@10": 5.0})

    assert isinstance(result, (float, ExpressionFailure))


def test_operator_precedence() -> None:
    assert evaluate("10 + 20 * 30", {}) == 610
    assert evaluate("(10 + 20) * 30", {}) == 900
    assert evaluate("100 - 20 - 30", {}) == 50
    assert evaluate("100 / 4 / 5", {}) == 5


def test_parse_builds_expected_tree() -> None:
    node = parse("-a + @10 * 2")

    assert node == Binary(
        "+",
        Unary("-", Variable("a")),
        Binary("*", OrderRef("@10"), Number(2.0)),
    )
    assert node.right.left.order == 10


def test_unary_operators_can_repeat() -> None:
    assert evaluate("--5", {}) == 5
    assert evaluate("-+-5", {}) == 5
    assert evaluate("-(2 + 3) * 2", {}) == -10


def test_variables_and_order_references_from_context() -> None:
    context = {"revenue": 1000.0, "cogs": -400.0, "@10": 600.0}

    assert evaluate("revenue + cogs", context) == 600.0
    assert evaluate("@10 / revenue * 100", context) == pytest.approx(60.0)


def test_division_by_zero_is_a_failure_value() -> None:
    result = evaluate("10 / 0", {})

    assert isinstance(result, ExpressionFailure)
    assert result.kind is FailureKind.DIVISION_BY_ZERO
    assert not result


def test_division_by_zero_from_context() -> None:
    result = evaluate("a / (b - b)", {"a": 1.0, "b": 3.0})
    assert isinstance(result, ExpressionFailure)
    assert result.kind is FailureKind.DIVISION_BY_ZERO


def test_undefined_variable_is_a_failure_value() -> None:
    result = evaluate("x + 1", {})

    assert isinstance(result, ExpressionFailure)
    assert result.kind is FailureKind.UNDEFINED_VARIABLE
    assert result.message == "Undefined variable: x"


def test_undefined_order_reference() -> None:
    result = evaluate("@10 + 1", {"@20": 5.0})

    assert isinstance(result, ExpressionFailure)
    assert result.kind is FailureKind.UNDEFINED_VARIABLE
    assert result.message == "Undefined order reference: @10"


@pytest.mark.parametrize(
    "expression, kind",
    [
        ("(1 + 2", FailureKind.MISSING_CLOSING_PARENTHESIS),
        ("1 +", FailureKind.UNEXPECTED_END),
        ("1 2", FailureKind.UNEXPECTED_TOKEN),
        ("(1 + 2))", FailureKind.UNEXPECTED_TOKEN),
        ("* 3", FailureKind.UNEXPECTED_TOKEN),
        ("a $ b", FailureKind.INVALID_TOKEN),
    ],
)
def test_syntax_failures_are_values(expression, kind) -> None:
    result = evaluate(expression, {"a": 1.0, "b": 2.0})

    assert isinstance(result, ExpressionFailure)
    assert result.kind is kind
    assert result.expression == expression


def test_unexpected_token_message_has_position() -> None:
    result = evaluate("1 2", {})
    assert result.message == "Unexpected token '2' at position 2"
    assert result.position == 2


def test_validate() -> None:
    assert validate("(@10 - @20) / @10").valid
    assert validate("(@10 - @20) / @10").errors == ()

    invalid = validate("(@10 - @20")
    assert not invalid.valid
    assert len(invalid.errors) == 1


def test_get_dependencies() -> None:
    assert get_dependencies("revenue + cogs - @10 * revenue") == frozenset(
        {"revenue", "cogs", "@10"}
    )
    assert get_dependencies("42") == frozenset()


def test_get_dependencies_raises_on_invalid_expression() -> None:
    with pytest.raises(ExpressionSyntaxError):
        get_dependencies("revenue +")


def test_cache_reuses_parsed_tree() -> None:
    cache = ExpressionCache()

    first = parse("a + b * 2", cache)
    second = parse("a + b * 2", cache)

    assert first is second
    assert len(cache) == 1
    assert "a + b * 2" in cache

    cache.clear()
    assert len(cache) == 0


def test_cache_memoizes_parse_failures() -> None:
    cache = ExpressionCache()

    for _ in range(2):
        with pytest.raises(ExpressionSyntaxError):
            parse("(a", cache)
    assert len(cache) == 1


def test_disabled_cache_stores_nothing() -> None:
    cache = ExpressionCache(enabled=False)

    assert evaluate("1 + 1", {}, cache) == 2
    assert len(cache) == 0


def test_results_are_identical_with_and_without_cache() -> None:
    cache = ExpressionCache()
    context = {"a": 3.0, "b": 4.0}

    for expression in ["a * b", "(a + b) / 2", "-a - -b"]:
        assert evaluate(expression, context, cache) == evaluate(expression, context)
