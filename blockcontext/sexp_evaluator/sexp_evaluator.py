"""
S-expression evaluator for the block/activation core.
Evaluates expressions in an activation, creates closures over the executing
activation and invokes closures and methods in fresh activations.
"""

import logging
import sys
from typing import Any, Callable, Dict, List, Optional, TextIO

from sexpdata import Symbol, Quoted as sexpdata_Quoted

from blockcontext.sexp_parser.sexp_parser import SexpParser, symbol_name
from blockcontext.system.errors import (
    SexpSyntaxError, SexpEvaluationError, UnresolvedNameError,
    WrongArgumentCountError, BlockCannotReturnError,
)
from blockcontext.system.models import EvaluatorConfig
from .sexp_activation import Activation, Cell, GlobalScope, NonLocalReturn
from .sexp_closure import Closure, Method, collect_temporaries, parse_parameter_list
from .sexp_printer import print_value
from .sexp_special_forms import SpecialFormProcessor
from .sexp_primitives import PrimitiveProcessor
from .sexp_values import NIL

SexpNode = Any # General type hint for AST nodes

logger = logging.getLogger(__name__)

TOP_LEVEL_LABEL = "doit"
NIL_SYMBOL = "nil"
CLOSURE_FORMS = ("lambda", "block")


def unquote(node: Any) -> Any:
    """Returns the datum wrapped by a sexpdata Quoted node ('x reads as Quoted(x))."""
    return node.value()


class SexpEvaluator:
    """
    Evaluates parsed S-expressions against activation records.

    Names are resolved through the lexical chain of the activation being evaluated,
    then through the global scope. Closures remember the activation that created
    them and are always run in a fresh activation whose parent is that home.
    """

    def __init__(self, config: Optional[EvaluatorConfig] = None, output_stream: Optional[TextIO] = None):
        """
        Initializes the evaluator.

        Args:
            config: Evaluator settings. Defaults to EvaluatorConfig().
            output_stream: Where 'print' writes. Defaults to sys.stdout.
        """
        self.config = config or EvaluatorConfig()
        self.output = output_stream or sys.stdout
        self.parser = SexpParser()
        self.globals = GlobalScope()
        self.methods: Dict[str, Method] = {}
        self.call_depth = 0

        self.special_form_processor = SpecialFormProcessor(self)
        self.primitive_processor = PrimitiveProcessor(self)

        # Dispatch dictionaries for special forms and primitives
        self.SPECIAL_FORM_HANDLERS: Dict[str, Callable] = {
            "if": self.special_form_processor.handle_if_form,
            "progn": self.special_form_processor.handle_progn_form,
            "quote": self.special_form_processor.handle_quote_form,
            "declare": self.special_form_processor.handle_declare_form,
            "set!": self.special_form_processor.handle_set_bang_form,
            "define": self.special_form_processor.handle_define_form,
            "return": self.special_form_processor.handle_return_form,
            "defmethod": self.special_form_processor.handle_defmethod_form,
            "send": self.special_form_processor.handle_send_form,
            "and": self.special_form_processor.handle_and_form,
            "or": self.special_form_processor.handle_or_form,
        }
        self.PRIMITIVE_APPLIERS: Dict[str, Callable] = {
            # Invocation
            "value": self.primitive_processor.apply_value_primitive,
            "cull": self.primitive_processor.apply_cull_primitive,
            "value-with-arguments": self.primitive_processor.apply_value_with_arguments_primitive,
            "num-args": self.primitive_processor.apply_num_args_primitive,
            # Arithmetic and comparison
            "+": self.primitive_processor.apply_add_primitive,
            "-": self.primitive_processor.apply_subtract_primitive,
            "*": self.primitive_processor.apply_multiply_primitive,
            "/": self.primitive_processor.apply_divide_primitive,
            "<": self.primitive_processor.apply_comparison_primitive("<"),
            ">": self.primitive_processor.apply_comparison_primitive(">"),
            "<=": self.primitive_processor.apply_comparison_primitive("<="),
            ">=": self.primitive_processor.apply_comparison_primitive(">="),
            "=": self.primitive_processor.apply_equal_primitive,
            "eq?": self.primitive_processor.apply_identical_primitive,
            "not": self.primitive_processor.apply_not_primitive,
            "null?": self.primitive_processor.apply_null_primitive,
            "nil?": self.primitive_processor.apply_null_primitive, # Alias for null?
            "string-append": self.primitive_processor.apply_string_append_primitive,
            # Collections
            "array": self.primitive_processor.apply_list_primitive,
            "list": self.primitive_processor.apply_list_primitive, # Alias for array
            "ordered": self.primitive_processor.apply_ordered_primitive,
            "add!": self.primitive_processor.apply_add_bang_primitive,
            "at": self.primitive_processor.apply_at_primitive,
            "at-put!": self.primitive_processor.apply_at_put_primitive,
            "size": self.primitive_processor.apply_size_primitive,
            # Iteration
            "do-each": self.primitive_processor.apply_do_each_primitive,
            "collect": self.primitive_processor.apply_collect_primitive,
            "inject": self.primitive_processor.apply_inject_primitive,
            "times-repeat": self.primitive_processor.apply_times_repeat_primitive,
            "to-do": self.primitive_processor.apply_to_do_primitive,
            "while-true": self.primitive_processor.apply_while_true_primitive,
            # Objects
            "new": self.primitive_processor.apply_new_primitive,
            "slot": self.primitive_processor.apply_slot_primitive,
            "slot-put!": self.primitive_processor.apply_slot_put_primitive,
            # Contexts
            "this-context": self.primitive_processor.apply_this_context_primitive,
            "describe": self.primitive_processor.apply_describe_primitive,
            # Output
            "print": self.primitive_processor.apply_print_primitive,
            "log-message": self.primitive_processor.apply_log_message_primitive,
        }
        logger.debug(f"SexpEvaluator INITIALIZED. SPECIAL_FORM_HANDLERS keys: {list(self.SPECIAL_FORM_HANDLERS.keys())}")
        logger.debug(f"SexpEvaluator INITIALIZED. PRIMITIVE_APPLIERS keys: {list(self.PRIMITIVE_APPLIERS.keys())}")

    # --- Driver entry points ---

    def new_top_level_activation(self, body: List[SexpNode], receiver: Any = NIL) -> Activation:
        """
        Creates the activation a top-level sequence of expressions runs in.
        Its temporaries are the '(declare ...)' statements of body.
        """
        temporaries = collect_temporaries(body, [])
        return Activation(TOP_LEVEL_LABEL, 'top', names=temporaries, receiver=receiver)

    def evaluate(self, expression: SexpNode, activation: Activation) -> Any:
        """
        Evaluates one parsed expression in the given activation.

        A '(return ...)' that targets this activation ends the evaluation with the
        returned value.

        Raises:
            SexpEvaluationError: Or one of its subclasses, when evaluation fails.
        """
        try:
            return self._eval(expression, activation)
        except NonLocalReturn as nlr:
            if nlr.target is activation:
                logger.debug(f"evaluate: return to {activation.label} -> {nlr.value!r}")
                return nlr.value
            logger.error(f"evaluate: non-local return to {nlr.target.label} escaped to the top")
            raise BlockCannotReturnError(nlr.target.label, expression=str(expression)) from None

    def evaluate_string(self, sexp_string: str) -> Any:
        """
        Parses a single expression and evaluates it in a fresh top-level activation.
        A top-level '(progn ...)' contributes its declarations to that activation.
        """
        logger.info(f"Evaluating S-expression string: {sexp_string[:100]}")
        return self._run_top_level(sexp_string, lambda: [self.parser.parse_string(sexp_string)])

    def run_program(self, source: str) -> Any:
        """
        Parses and evaluates a sequence of top-level expressions in one top-level
        activation. Answers the value of the last expression (nil for an empty program).
        """
        logger.info(f"Running program ({len(source)} characters)")
        return self._run_top_level(source, lambda: self.parser.parse_program(source))

    def _run_top_level(self, source: str, read: Callable[[], List[SexpNode]]) -> Any:
        try:
            body = read()
            activation = self.new_top_level_activation(body)
            result = self._run_body(body, activation, catch_returns=True)
            logger.info(f"Finished evaluating top-level source. Result type: {type(result).__name__}")
            return result
        except SexpSyntaxError as e:
            logger.error(f"S-expression syntax error: {e}")
            raise
        except NonLocalReturn as nlr:
            logger.error(f"Non-local return to {nlr.target.label} escaped to the top")
            raise BlockCannotReturnError(nlr.target.label, expression=source) from None
        except SexpEvaluationError as e:
            logger.error(f"S-expression evaluation error: {e}")
            if not e.expression:
                e.expression = source
            raise
        except RecursionError as e:
            logger.error("Python recursion limit reached during evaluation")
            raise SexpEvaluationError("Maximum call depth exceeded", expression=source, error_details=str(e)) from e
        except Exception as e:
            logger.exception(f"Unexpected error during S-expression evaluation: {e}")
            raise SexpEvaluationError(f"Evaluation failed: {e}", expression=source, error_details=str(e)) from e

    # --- Invocation ---

    def invoke_closure(self, closure: Closure, args: List[Any], strict_arity: bool = True,
                       original_expr_str: str = "") -> Any:
        """
        Runs a closure in a fresh activation whose parent is the closure's home.

        Args:
            closure: The block to run.
            args: Already evaluated argument values.
            strict_arity: If True the argument count must equal the parameter count.
                          If False extra arguments are dropped and missing ones are nil.
            original_expr_str: Source text for error messages.

        Raises:
            WrongArgumentCountError: Strict invocation with the wrong number of arguments.
        """
        num_params = closure.num_args
        if strict_arity and len(args) != num_params:
            raise WrongArgumentCountError(num_params, len(args), expression=original_expr_str)
        if not strict_arity:
            args = list(args[:num_params]) + [NIL] * (num_params - len(args))

        activation = Activation(
            f"block in {closure.home.label}", 'block',
            names=closure.params + closure.temporaries,
            parent=closure.home,
        )
        for name, value in zip(closure.params, args):
            activation.bind(name, value)
        logger.debug(f"invoke_closure: {closure!r} with {len(args)} args in activation id={id(activation)}")
        return self._run_body(closure.body, activation, catch_returns=False, original_expr_str=original_expr_str)

    def invoke_method(self, receiver: Any, selector: str, args: List[Any], original_expr_str: str = "") -> Any:
        """
        Runs the method registered under selector with receiver bound to 'self'.

        Raises:
            SexpEvaluationError: If no method is registered under selector.
            WrongArgumentCountError: If the argument count differs from the method's.
        """
        method = self.methods.get(selector)
        if method is None:
            raise SexpEvaluationError(f"{print_value(receiver)} does not understand '{selector}'", original_expr_str)
        if len(args) != method.num_args:
            raise WrongArgumentCountError(method.num_args, len(args), expression=original_expr_str,
                                          callable_name=f"Method '{selector}'")

        activation = Activation(
            f"{print_value(receiver)}>>{selector}", 'method',
            names=method.params + method.temporaries,
            receiver=receiver,
        )
        for name, value in zip(method.params, args):
            activation.bind(name, value)
        logger.debug(f"invoke_method: {selector} on {print_value(receiver)} in activation id={id(activation)}")
        return self._run_body(method.body, activation, catch_returns=True, original_expr_str=original_expr_str)

    def _run_body(self, body: List[SexpNode], activation: Activation, catch_returns: bool,
                  original_expr_str: str = "") -> Any:
        """Evaluates body in activation; the last value is the result (nil if body is empty)."""
        if self.call_depth >= self.config.max_call_depth:
            raise SexpEvaluationError(
                f"Maximum call depth exceeded ({self.config.max_call_depth})", original_expr_str
            )
        self.call_depth += 1
        try:
            result: Any = NIL
            for body_node in body:
                result = self._eval(body_node, activation)
            return result
        except NonLocalReturn as nlr:
            if catch_returns and nlr.target is activation:
                logger.debug(f"_run_body: non-local return caught by {activation.label} -> {nlr.value!r}")
                return nlr.value
            raise
        finally:
            activation.returned = True
            self.call_depth -= 1

    # --- Evaluation ---

    def resolve_cell(self, name: str, activation: Activation, original_expr_str: str = "") -> Cell:
        """
        Resolves name to its cell: the activation's lexical chain first, then globals.

        Raises:
            UnresolvedNameError: If neither binds name.
        """
        cell = activation.find_cell(name)
        if cell is None:
            cell = self.globals.find_cell(name)
        if cell is None:
            logger.debug(f"resolve_cell: unbound symbol '{name}'")
            raise UnresolvedNameError(name, expression=original_expr_str)
        return cell

    def _eval(self, node: SexpNode, activation: Activation) -> Any:
        """
        Internal recursive evaluation method for S-expression AST nodes.
        Handles atoms, symbols and closure literals, and dispatches list evaluation.
        """
        if isinstance(node, Symbol):
            name = symbol_name(node)
            if name == NIL_SYMBOL:
                return NIL
            value = self.resolve_cell(name, activation).value
            logger.debug(f"Eval Symbol: '{name}' -> {value!r}")
            return value

        if isinstance(node, sexpdata_Quoted):
            return unquote(node)

        if not isinstance(node, list):
            # Numbers, strings, booleans
            return node

        if not node:
            return []

        op_expr_node = node[0]
        if isinstance(op_expr_node, Symbol) and symbol_name(op_expr_node) in CLOSURE_FORMS:
            return self._make_closure(node, activation)

        return self._eval_list_form(node, activation)

    def _make_closure(self, node: list, activation: Activation) -> Closure:
        """Evaluates a closure literal: (lambda (params...) body...). The home is the executing activation."""
        original_expr_str = str(node)
        if len(node) < 2:
            raise SexpEvaluationError(
                f"'{symbol_name(node[0])}' requires a parameter list.", expression=original_expr_str
            )
        params = parse_parameter_list(node[1], original_expr_str)
        body = list(node[2:])
        temporaries = collect_temporaries(body, params, original_expr_str)
        return Closure(params, temporaries, body, activation)

    def _eval_list_form(self, expr_list: list, activation: Activation) -> Any:
        """
        Evaluates a non-empty list expression.
        Dispatches to special form handlers, primitives, or operator application.
        """
        original_expr_str = str(expr_list)
        op_expr_node = expr_list[0]
        arg_expr_nodes = expr_list[1:]

        if isinstance(op_expr_node, Symbol):
            op_name_str = symbol_name(op_expr_node)
            # 1. Special forms see their operands unevaluated
            if op_name_str in self.SPECIAL_FORM_HANDLERS:
                logger.debug(f"  _eval_list_form: Dispatching to Special Form Handler: {op_name_str}")
                return self.SPECIAL_FORM_HANDLERS[op_name_str](arg_expr_nodes, activation, original_expr_str)
            # 2. Primitives take precedence over variables of the same name
            if op_name_str in self.PRIMITIVE_APPLIERS:
                return self._apply_primitive(op_name_str, arg_expr_nodes, activation, original_expr_str)
            # 3. Otherwise the operator is a variable (e.g. a block)
            resolved_operator = self.resolve_cell(op_name_str, activation, original_expr_str).value
        elif isinstance(op_expr_node, list):
            resolved_operator = self._eval(op_expr_node, activation)
        else:
            raise SexpEvaluationError(
                f"Operator in list form must be a symbol or another list, got {type(op_expr_node).__name__}: {op_expr_node}",
                original_expr_str
            )

        return self._apply_operator(resolved_operator, arg_expr_nodes, activation, original_expr_str)

    def _apply_primitive(self, op_name_str: str, arg_expr_nodes: List[SexpNode], activation: Activation,
                         original_expr_str: str) -> Any:
        applier_method = self.PRIMITIVE_APPLIERS[op_name_str]
        try:
            result = applier_method(arg_expr_nodes, activation, original_expr_str)
            logger.debug(f"  _apply_primitive: '{op_name_str}' returned: {result!r}")
            return result
        except (SexpEvaluationError, NonLocalReturn, RecursionError):
            raise
        except Exception as e_prim_unknown:
            logger.exception(f"  _apply_primitive: '{op_name_str}' raised unexpected exception: {e_prim_unknown}")
            raise SexpEvaluationError(
                f"Unexpected error in primitive '{op_name_str}': {e_prim_unknown}",
                original_expr_str,
                error_details=str(e_prim_unknown)
            ) from e_prim_unknown

    def _apply_operator(self, resolved_op: Any, arg_expr_nodes: List[SexpNode], calling_activation: Activation,
                        original_call_expr_str: str) -> Any:
        """
        Applies a resolved operator to argument expressions evaluated in the calling activation.
        Closures are invoked strictly; plain Python callables are called directly.
        """
        evaluated_args = self.eval_args(arg_expr_nodes, calling_activation)

        if isinstance(resolved_op, Closure):
            return self.invoke_closure(resolved_op, evaluated_args, strict_arity=True,
                                       original_expr_str=original_call_expr_str)

        if callable(resolved_op):
            try:
                return resolved_op(*evaluated_args)
            except Exception as e:
                logger.exception(f"  _apply_operator: Error calling Python callable {resolved_op}: {e}")
                raise SexpEvaluationError(f"Error invoking callable {resolved_op}: {e}", original_call_expr_str,
                                          error_details=str(e)) from e

        raise SexpEvaluationError(
            f"Cannot apply non-callable operator: {print_value(resolved_op)}", original_call_expr_str
        )

    def eval_args(self, arg_expr_nodes: List[SexpNode], activation: Activation) -> List[Any]:
        """Evaluates argument expressions left to right in activation."""
        return [self._eval(arg_node, activation) for arg_node in arg_expr_nodes]
