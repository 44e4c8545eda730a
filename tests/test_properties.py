"""Stack-effect properties that hold for every value."""

import pytest

SAMPLES = ["0", "-12", "1.5", '"text"', '""', "true", "false", "{ 1 + }", "int"]


def _shape(stack):
    # Blocks from separate runs never compare equal, so compare renderings.
    return [(v.type_name(), v.to_string()) for v in stack]


@pytest.mark.parametrize("literal", SAMPLES)
def test_print_does_not_consume(run_stk, literal):
    plain = run_stk(literal)
    printed = run_stk(literal + " print")
    assert _shape(printed.stack) == _shape(plain.stack)
    assert printed.out == plain.stack[0].to_string() + "\n"


@pytest.mark.parametrize("literal", SAMPLES)
def test_dup_drop_is_identity(run_stk, literal):
    before = run_stk("7 " + literal)
    after = run_stk("7 " + literal + " dup drop")
    assert _shape(after.stack) == _shape(before.stack)


@pytest.mark.parametrize("a", SAMPLES)
@pytest.mark.parametrize("b", ["3", '"s"', "false"])
def test_swap_swap_is_identity(run_stk, a, b):
    before = run_stk(a + " " + b)
    after = run_stk(a + " " + b + " swap swap")
    assert _shape(after.stack) == _shape(before.stack)


@pytest.mark.parametrize("literal", SAMPLES)
def test_type_pushes_one_tag(run_stk, literal):
    result = run_stk(literal + " type")
    assert len(result.stack) == 1
    assert result.stack[0].type_name() == "tag"


@pytest.mark.parametrize("word", ["Hello", "ab", "日本語"])
def test_index_matches_characters(run_stk, word):
    for i, ch in enumerate(word):
        result = run_stk(f'"{word}" {i} /')
        assert [v.value for v in result.stack] == [ch]


@pytest.mark.parametrize("n", [1, 2, 10])
def test_countdown_loop_ends_at_zero(run_stk, n):
    result = run_stk(f"{n} true {{ 1 - dup 0 = ! }} loop")
    assert [v.value for v in result.stack] == [0]


@pytest.mark.parametrize("cond,expected", [("true", "yes"), ("false", "no")])
def test_gate_runs_one_branch(run_stk, cond, expected):
    result = run_stk(cond + ' { "no" } { "yes" } gate')
    assert [v.value for v in result.stack] == [expected]


def test_function_call(run_stk):
    result = run_stk("@foo { 2 + }\n100 foo $")
    assert [v.value for v in result.stack] == [102]


def test_print_product(run_stk):
    assert run_stk("2 3 * print").out == "6\n"


def test_print_indexed_character(run_stk):
    assert run_stk('"Hello" 2 / print').out == "e\n"


def test_blocks_share_one_stack(run_stk):
    result = run_stk("1 2 { + } $ { 10 * } $")
    assert [v.value for v in result.stack] == [30]
