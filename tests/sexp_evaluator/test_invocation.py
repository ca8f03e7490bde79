"""
Tests for strict and lenient block invocation.
"""

import pytest

from blockcontext.sexp_evaluator.sexp_evaluator import SexpEvaluator
from blockcontext.sexp_evaluator.sexp_values import NIL
from blockcontext.system.errors import SexpEvaluationError, WrongArgumentCountError
from blockcontext.system.models import EvaluatorConfig

# --- Strict invocation ---

def test_value_with_matching_arguments(run):
    assert run("(value (lambda (a b) (+ a b)) 3 4)") == 7

@pytest.mark.parametrize("supplied", [0, 1, 3, 4])
def test_strict_invocation_rejects_wrong_count(evaluator, supplied):
    block = evaluator.run_program("(lambda (a b) (+ a b))")
    with pytest.raises(WrongArgumentCountError) as excinfo:
        evaluator.invoke_closure(block, list(range(supplied)))
    assert excinfo.value.expected == 2
    assert excinfo.value.supplied == supplied

def test_value_wrong_count_message(run):
    with pytest.raises(WrongArgumentCountError, match="Arity mismatch: Block expects 1 arguments, got 2"):
        run("(value (lambda (x) x) 1 2)")

def test_direct_call_of_block_variable(run):
    assert run("(define square (lambda (x) (* x x))) (square 5)") == 25

def test_direct_call_of_block_literal(run):
    assert run("((lambda (x) (* x x)) 7)") == 49

def test_direct_call_is_strict(run):
    with pytest.raises(WrongArgumentCountError):
        run("(define square (lambda (x) (* x x))) (square)")

def test_value_with_arguments(run):
    assert run("(value-with-arguments (lambda (a b) (- a b)) (array 10 4))") == 6

def test_value_with_arguments_is_strict(run):
    with pytest.raises(WrongArgumentCountError):
        run("(value-with-arguments (lambda (a b) a) (array 1))")

def test_value_requires_block(run):
    with pytest.raises(SexpEvaluationError, match="'value' argument 1 must be a block, got 5"):
        run("(value 5)")

# --- Lenient invocation ---

def test_cull_fills_missing_with_nil(run):
    assert run("(cull (lambda (a b) (array a b)) 1)") == [1, NIL]

def test_cull_drops_extra_arguments(run):
    assert run("(cull (lambda (a b) (array a b)) 1 2 3)") == [1, 2]

def test_cull_zero_parameter_block(run):
    assert run("(cull (lambda () 5) 1 2)") == 5

def test_cull_exact_count(run):
    assert run("(cull (lambda (a) a) 9)") == 9

def test_arithmetic_on_unfilled_parameter_fails(run):
    """A nil parameter is a value like any other; it is not an arity error."""
    with pytest.raises(SexpEvaluationError, match="must be a number, got nil") as excinfo:
        run("(cull (lambda (a) (+ a 1)))")
    assert not isinstance(excinfo.value, WrongArgumentCountError)

def test_invoke_closure_lenient_from_python(evaluator):
    block = evaluator.run_program("(lambda (a b c) (array a b c))")
    assert evaluator.invoke_closure(block, [1], strict_arity=False) == [1, NIL, NIL]

# --- Block bodies ---

def test_num_args(run):
    assert run("(num-args (lambda (a b c) a))") == 3
    assert run("(num-args (lambda () 1))") == 0

def test_empty_body_answers_nil(run):
    assert run("(value (lambda ()))") is NIL

def test_unassigned_temporary_is_nil(run):
    assert run("(value (lambda () (declare t) t))") is NIL

def test_last_expression_is_result(run):
    assert run("(value (lambda (x) (+ x 1) (* x 10)) 2)") == 20

def test_block_form_alias(run):
    assert run("(value (block (x) (+ x 1)) 1)") == 2

def test_closure_requires_parameter_list(run):
    with pytest.raises(SexpEvaluationError, match="requires a parameter list"):
        run("(lambda)")

def test_closure_rejects_bad_parameter_list(run):
    with pytest.raises(SexpEvaluationError, match="Parameter definition must be a list"):
        run("(lambda x x)")

def test_temporary_clashing_with_parameter(run):
    with pytest.raises(SexpEvaluationError, match="already defined in this scope"):
        run("(lambda (a) (declare a) a)")

# --- Depth limit ---

def test_runaway_recursion_is_reported(output):
    evaluator = SexpEvaluator(config=EvaluatorConfig(max_call_depth=20), output_stream=output)
    with pytest.raises(SexpEvaluationError, match="Maximum call depth exceeded"):
        evaluator.run_program("(define spin (lambda (n) (spin n))) (spin 1)")
    assert evaluator.call_depth == 0

def test_depth_limit_allows_shallow_recursion(output):
    evaluator = SexpEvaluator(config=EvaluatorConfig(max_call_depth=20), output_stream=output)
    result = evaluator.run_program("""
        (define fact (lambda (n) (if (<= n 1) 1 (* n (fact (- n 1))))))
        (fact 10)
    """)
    assert result == 3628800
