"""
Processor for S-expression special forms.
Special forms receive their operands unevaluated and decide themselves what to
evaluate, and in which activation.
"""
import logging
from typing import Any, List, TYPE_CHECKING

from blockcontext.sexp_parser.sexp_parser import is_symbol, symbol_name
from blockcontext.system.errors import SexpEvaluationError, BlockCannotReturnError
from .sexp_activation import Activation, NonLocalReturn, SELF_NAME
from .sexp_closure import Method, collect_temporaries, parse_parameter_list
from .sexp_values import NIL

# SexpNode is an alias for Any, representing a parsed S-expression node.
SexpNode = Any

if TYPE_CHECKING:
    from .sexp_evaluator import SexpEvaluator # Forward reference for type hinting

logger = logging.getLogger(__name__)

class SpecialFormProcessor:
    """
    Processes special forms for the SexpEvaluator.
    Each method handles a specific special form and is responsible for
    its evaluation semantics, including managing operand evaluation
    and activation lookups as required by the form.
    """
    def __init__(self, evaluator_instance: 'SexpEvaluator'):
        """
        Initializes the SpecialFormProcessor.

        Args:
            evaluator_instance: An instance of the SexpEvaluator to be used for
                                recursive evaluation of sub-expressions.
        """
        self.evaluator = evaluator_instance
        logger.debug("SpecialFormProcessor initialized.")

    def handle_if_form(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """Handles the 'if' special form: (if condition then_branch [else_branch])"""
        if len(arg_exprs) not in (2, 3):
            raise SexpEvaluationError("'if' requires 2 or 3 arguments: (if condition then_branch [else_branch])", original_expr_str)

        condition_result = self.evaluator._eval(arg_exprs[0], activation)
        logger.debug(f"  'if' condition '{arg_exprs[0]}' evaluated to: {condition_result!r}")

        if condition_result:
            return self.evaluator._eval(arg_exprs[1], activation)
        if len(arg_exprs) == 3:
            return self.evaluator._eval(arg_exprs[2], activation)
        return NIL

    def handle_progn_form(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """Handles the 'progn' special form: (progn expr...). Does not open a scope."""
        final_result: Any = NIL
        for i, expr in enumerate(arg_exprs):
            final_result = self.evaluator._eval(expr, activation)
            logger.debug(f"  'progn' expression {i+1} evaluated to: {final_result!r}")
        return final_result

    def handle_quote_form(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """Handles the 'quote' special form: (quote expression)"""
        if len(arg_exprs) != 1:
            raise SexpEvaluationError("'quote' requires exactly one argument: (quote expression)", original_expr_str)
        return arg_exprs[0]

    def handle_declare_form(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """
        Handles the 'declare' special form: (declare name...)

        Cells are allocated when the activation is created, so at run time this only
        checks that the declaration was seen by that scan.
        """
        for name_node in arg_exprs:
            if not is_symbol(name_node) or not activation.declares(symbol_name(name_node)):
                raise SexpEvaluationError(
                    "'declare' must appear at the top level of a method, block or program body",
                    original_expr_str
                )
        return NIL

    def handle_set_bang_form(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """Handles the 'set!' special form: (set! name expression). Answers the new value."""
        if len(arg_exprs) != 2 or not is_symbol(arg_exprs[0]):
            raise SexpEvaluationError("'set!' requires a symbol and a value expression: (set! name expression)", original_expr_str)

        name = symbol_name(arg_exprs[0])
        # 'self' is fixed when its activation is created
        if name == SELF_NAME:
            raise SexpEvaluationError("Cannot assign to 'self'", original_expr_str)
        # Evaluate first so a failing expression leaves the cell untouched
        new_value = self.evaluator._eval(arg_exprs[1], activation)
        cell = self.evaluator.resolve_cell(name, activation, original_expr_str)
        cell.value = new_value
        logger.debug(f"  'set!': Updated '{name}' (cell id={id(cell)}) to {new_value!r}")
        return new_value

    def handle_define_form(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """Handles the 'define' special form: (define name expression). Binds a global."""
        if len(arg_exprs) != 2 or not is_symbol(arg_exprs[0]):
            raise SexpEvaluationError("'define' requires a symbol and a value expression: (define name expression)", original_expr_str)

        name = symbol_name(arg_exprs[0])
        value = self.evaluator._eval(arg_exprs[1], activation)
        self.evaluator.globals.define(name, value)
        return value

    def handle_return_form(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """
        Handles the 'return' special form: (return [expression])

        Returns from the home method activation: the innermost non-block activation
        on the lexical chain. Inside a block this terminates the method that created
        the block, unwinding every call in between.
        """
        if len(arg_exprs) > 1:
            raise SexpEvaluationError("'return' takes at most one expression: (return [expression])", original_expr_str)

        value = self.evaluator._eval(arg_exprs[0], activation) if arg_exprs else NIL
        target = activation.home_method_activation()
        if target is None or target.returned:
            home_label = target.label if target is not None else activation.label
            logger.error(f"  'return': home context {home_label} is dead")
            raise BlockCannotReturnError(home_label, expression=original_expr_str)
        logger.debug(f"  'return': unwinding to {target.label} with {value!r}")
        raise NonLocalReturn(target, value)

    def handle_defmethod_form(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """Handles the 'defmethod' special form: (defmethod selector (params...) body...). Answers the selector."""
        if len(arg_exprs) < 2 or not is_symbol(arg_exprs[0]):
            raise SexpEvaluationError("'defmethod' requires a selector and a parameter list: (defmethod selector (params...) body...)", original_expr_str)

        selector = symbol_name(arg_exprs[0])
        params = parse_parameter_list(arg_exprs[1], original_expr_str)
        body = list(arg_exprs[2:])
        temporaries = collect_temporaries(body, params, original_expr_str)
        self.evaluator.methods[selector] = Method(selector, params, temporaries, body)
        logger.debug(f"  'defmethod': registered '{selector}' with params {params}")
        return arg_exprs[0]

    def handle_send_form(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """
        Handles the 'send' special form: (send receiver selector arg...)
        The selector is a literal symbol; receiver and arguments are evaluated.
        """
        if len(arg_exprs) < 2 or not is_symbol(arg_exprs[1]):
            raise SexpEvaluationError("'send' requires a receiver and a selector symbol: (send receiver selector arg...)", original_expr_str)

        receiver = self.evaluator._eval(arg_exprs[0], activation)
        selector = symbol_name(arg_exprs[1])
        args = self.evaluator.eval_args(arg_exprs[2:], activation)
        return self.evaluator.invoke_method(receiver, selector, args, original_expr_str)

    def handle_and_form(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """Handles the 'and' special form: (and expr...). Answers the first falsy value, or the last value."""
        result: Any = True
        for expr in arg_exprs:
            result = self.evaluator._eval(expr, activation)
            if not result:
                return result
        return result

    def handle_or_form(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """Handles the 'or' special form: (or expr...). Answers the first truthy value, or the last value."""
        result: Any = False
        for expr in arg_exprs:
            result = self.evaluator._eval(expr, activation)
            if result:
                return result
        return result
