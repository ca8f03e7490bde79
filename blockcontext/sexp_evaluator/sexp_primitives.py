"""
Processor for S-expression primitives.
Primitives evaluate all of their operands in the calling activation and then
operate on the values: block invocation, arithmetic, collections, iteration,
receiver objects and output.
"""
import logging
import operator
from typing import Any, Callable, List, TYPE_CHECKING

from blockcontext.system.errors import SexpEvaluationError
from .sexp_activation import Activation
from .sexp_closure import Closure
from .sexp_printer import print_value
from .sexp_values import NIL, ReceiverObject

SexpNode = Any

if TYPE_CHECKING:
    from .sexp_evaluator import SexpEvaluator # Forward reference for type hinting

logger = logging.getLogger(__name__)

COMPARISONS = {
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
}


class PrimitiveProcessor:
    """
    Applies primitive operations for the SexpEvaluator.
    Every applier has the signature (arg_exprs, activation, original_expr_str).
    """
    def __init__(self, evaluator_instance: 'SexpEvaluator'):
        """
        Initializes the PrimitiveProcessor.

        Args:
            evaluator_instance: An instance of the SexpEvaluator used to evaluate
                                operands and to invoke blocks.
        """
        self.evaluator = evaluator_instance
        logger.debug("PrimitiveProcessor initialized.")

    # --- Operand helpers ---

    def _eval_operands(self, op_name: str, arg_exprs: List[SexpNode], activation: Activation,
                       original_expr_str: str, count: int = None) -> List[Any]:
        if count is not None and len(arg_exprs) != count:
            raise SexpEvaluationError(f"'{op_name}' requires exactly {count} argument(s), got {len(arg_exprs)}.", original_expr_str)
        return self.evaluator.eval_args(arg_exprs, activation)

    @staticmethod
    def _expect_block(op_name: str, value: Any, position: int, original_expr_str: str) -> Closure:
        if not isinstance(value, Closure):
            raise SexpEvaluationError(f"'{op_name}' argument {position} must be a block, got {print_value(value)}.", original_expr_str)
        return value

    @staticmethod
    def _expect_number(op_name: str, value: Any, position: int, original_expr_str: str) -> Any:
        # bool is an int subclass; true/false are not numbers here
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise SexpEvaluationError(f"'{op_name}' argument {position} must be a number, got {print_value(value)}.", original_expr_str)
        return value

    @staticmethod
    def _expect_integer(op_name: str, value: Any, position: int, original_expr_str: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise SexpEvaluationError(f"'{op_name}' argument {position} must be an integer, got {print_value(value)}.", original_expr_str)
        return value

    @staticmethod
    def _expect_list(op_name: str, value: Any, position: int, original_expr_str: str) -> list:
        if not isinstance(value, list):
            raise SexpEvaluationError(f"'{op_name}' argument {position} must be a collection, got {print_value(value)}.", original_expr_str)
        return value

    def _index(self, op_name: str, collection: list, index: Any, original_expr_str: str) -> int:
        index = self._expect_integer(op_name, index, 2, original_expr_str)
        if not 1 <= index <= len(collection):
            raise SexpEvaluationError(f"'{op_name}': index {index} out of bounds for collection of size {len(collection)}.", original_expr_str)
        return index - 1

    # --- Invocation ---

    def apply_value_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """(value block arg...): strict invocation."""
        if not arg_exprs:
            raise SexpEvaluationError("'value' requires a block argument.", original_expr_str)
        values = self.evaluator.eval_args(arg_exprs, activation)
        block = self._expect_block("value", values[0], 1, original_expr_str)
        return self.evaluator.invoke_closure(block, values[1:], strict_arity=True, original_expr_str=original_expr_str)

    def apply_cull_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """(cull block arg...): lenient invocation. Extra arguments are dropped, missing ones are nil."""
        if not arg_exprs:
            raise SexpEvaluationError("'cull' requires a block argument.", original_expr_str)
        values = self.evaluator.eval_args(arg_exprs, activation)
        block = self._expect_block("cull", values[0], 1, original_expr_str)
        return self.evaluator.invoke_closure(block, values[1:], strict_arity=False, original_expr_str=original_expr_str)

    def apply_value_with_arguments_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """(value-with-arguments block collection): strict invocation with the collection's elements."""
        block_value, args_value = self._eval_operands("value-with-arguments", arg_exprs, activation, original_expr_str, count=2)
        block = self._expect_block("value-with-arguments", block_value, 1, original_expr_str)
        args = self._expect_list("value-with-arguments", args_value, 2, original_expr_str)
        return self.evaluator.invoke_closure(block, list(args), strict_arity=True, original_expr_str=original_expr_str)

    def apply_num_args_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> int:
        (block_value,) = self._eval_operands("num-args", arg_exprs, activation, original_expr_str, count=1)
        return self._expect_block("num-args", block_value, 1, original_expr_str).num_args

    # --- Arithmetic and comparison ---

    def apply_add_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        total = 0
        for i, val in enumerate(self.evaluator.eval_args(arg_exprs, activation)):
            total += self._expect_number("+", val, i + 1, original_expr_str)
        logger.debug(f"  '+': Result -> {total}")
        return total

    def apply_subtract_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        if not (1 <= len(arg_exprs) <= 2):
            raise SexpEvaluationError("'-' requires one or two numeric arguments.", original_expr_str)
        values = [self._expect_number("-", val, i + 1, original_expr_str)
                  for i, val in enumerate(self.evaluator.eval_args(arg_exprs, activation))]
        if len(values) == 1:
            return -values[0]
        return values[0] - values[1]

    def apply_multiply_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        product = 1
        for i, val in enumerate(self.evaluator.eval_args(arg_exprs, activation)):
            product *= self._expect_number("*", val, i + 1, original_expr_str)
        return product

    def apply_divide_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        dividend, divisor = [self._expect_number("/", val, i + 1, original_expr_str)
                             for i, val in enumerate(self._eval_operands("/", arg_exprs, activation, original_expr_str, count=2))]
        if divisor == 0:
            raise SexpEvaluationError("'/': division by zero.", original_expr_str)
        if isinstance(dividend, int) and isinstance(divisor, int) and dividend % divisor == 0:
            return dividend // divisor
        return dividend / divisor

    def apply_comparison_primitive(self, op_name: str) -> Callable:
        """Builds the applier for one of the numeric comparisons in COMPARISONS."""
        compare = COMPARISONS[op_name]

        def apply(arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> bool:
            lhs, rhs = [self._expect_number(op_name, val, i + 1, original_expr_str)
                        for i, val in enumerate(self._eval_operands(op_name, arg_exprs, activation, original_expr_str, count=2))]
            return compare(lhs, rhs)

        return apply

    def apply_equal_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> bool:
        lhs, rhs = self._eval_operands("=", arg_exprs, activation, original_expr_str, count=2)
        return lhs == rhs

    def apply_identical_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> bool:
        """(eq? a b): identity for objects, value equality for numbers, strings and booleans."""
        lhs, rhs = self._eval_operands("eq?", arg_exprs, activation, original_expr_str, count=2)
        if isinstance(lhs, (int, float, str)) and type(lhs) is type(rhs):
            return lhs == rhs
        return lhs is rhs

    def apply_not_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> bool:
        (val,) = self._eval_operands("not", arg_exprs, activation, original_expr_str, count=1)
        return not val

    def apply_null_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> bool:
        (val,) = self._eval_operands("null?", arg_exprs, activation, original_expr_str, count=1)
        return val is NIL

    def apply_string_append_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> str:
        parts = []
        for i, val in enumerate(self.evaluator.eval_args(arg_exprs, activation)):
            if not isinstance(val, str):
                raise SexpEvaluationError(f"'string-append' argument {i + 1} must be a string, got {print_value(val)}.", original_expr_str)
            parts.append(str(val))
        return "".join(parts)

    # --- Collections ---

    def apply_list_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> List[Any]:
        return self.evaluator.eval_args(arg_exprs, activation)

    def apply_ordered_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> List[Any]:
        """(ordered): a new, empty growable collection."""
        self._eval_operands("ordered", arg_exprs, activation, original_expr_str, count=0)
        return []

    def apply_add_bang_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """(add! collection value): appends value and answers it."""
        collection, value = self._eval_operands("add!", arg_exprs, activation, original_expr_str, count=2)
        self._expect_list("add!", collection, 1, original_expr_str).append(value)
        return value

    def apply_at_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """(at collection index): 1-based element access."""
        collection, index = self._eval_operands("at", arg_exprs, activation, original_expr_str, count=2)
        collection = self._expect_list("at", collection, 1, original_expr_str)
        return collection[self._index("at", collection, index, original_expr_str)]

    def apply_at_put_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """(at-put! collection index value): 1-based element store. Answers value."""
        collection, index, value = self._eval_operands("at-put!", arg_exprs, activation, original_expr_str, count=3)
        collection = self._expect_list("at-put!", collection, 1, original_expr_str)
        collection[self._index("at-put!", collection, index, original_expr_str)] = value
        return value

    def apply_size_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> int:
        (collection,) = self._eval_operands("size", arg_exprs, activation, original_expr_str, count=1)
        if isinstance(collection, str):
            return len(collection)
        return len(self._expect_list("size", collection, 1, original_expr_str))

    # --- Iteration ---
    # Each iteration invokes the block afresh, so block-declared temporaries get new cells per iteration.

    def apply_do_each_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """(do-each collection block): runs block on each element. Answers the collection."""
        collection, block = self._eval_operands("do-each", arg_exprs, activation, original_expr_str, count=2)
        collection = self._expect_list("do-each", collection, 1, original_expr_str)
        block = self._expect_block("do-each", block, 2, original_expr_str)
        for element in list(collection):
            self.evaluator.invoke_closure(block, [element], original_expr_str=original_expr_str)
        return collection

    def apply_collect_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> List[Any]:
        """(collect collection block): a new collection of the block's results."""
        collection, block = self._eval_operands("collect", arg_exprs, activation, original_expr_str, count=2)
        collection = self._expect_list("collect", collection, 1, original_expr_str)
        block = self._expect_block("collect", block, 2, original_expr_str)
        return [self.evaluator.invoke_closure(block, [element], original_expr_str=original_expr_str)
                for element in list(collection)]

    def apply_inject_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """(inject collection initial block): folds block over the elements, starting from initial."""
        collection, accumulator, block = self._eval_operands("inject", arg_exprs, activation, original_expr_str, count=3)
        collection = self._expect_list("inject", collection, 1, original_expr_str)
        block = self._expect_block("inject", block, 3, original_expr_str)
        for element in list(collection):
            accumulator = self.evaluator.invoke_closure(block, [accumulator, element], original_expr_str=original_expr_str)
        return accumulator

    def apply_times_repeat_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """(times-repeat n block): runs a zero-argument block n times. Answers n."""
        count, block = self._eval_operands("times-repeat", arg_exprs, activation, original_expr_str, count=2)
        count = self._expect_integer("times-repeat", count, 1, original_expr_str)
        block = self._expect_block("times-repeat", block, 2, original_expr_str)
        for _ in range(count):
            self.evaluator.invoke_closure(block, [], original_expr_str=original_expr_str)
        return count

    def apply_to_do_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """(to-do start end block): runs block with each integer from start to end inclusive. Answers start."""
        start, end, block = self._eval_operands("to-do", arg_exprs, activation, original_expr_str, count=3)
        start = self._expect_integer("to-do", start, 1, original_expr_str)
        end = self._expect_integer("to-do", end, 2, original_expr_str)
        block = self._expect_block("to-do", block, 3, original_expr_str)
        for i in range(start, end + 1):
            self.evaluator.invoke_closure(block, [i], original_expr_str=original_expr_str)
        return start

    def apply_while_true_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """(while-true condition-block body-block): runs body while condition answers true. Answers nil."""
        condition, body = self._eval_operands("while-true", arg_exprs, activation, original_expr_str, count=2)
        condition = self._expect_block("while-true", condition, 1, original_expr_str)
        body = self._expect_block("while-true", body, 2, original_expr_str)
        while self.evaluator.invoke_closure(condition, [], original_expr_str=original_expr_str):
            self.evaluator.invoke_closure(body, [], original_expr_str=original_expr_str)
        return NIL

    # --- Receiver objects ---

    def apply_new_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> ReceiverObject:
        """(new "ClassName"): a fresh receiver object."""
        (class_name,) = self._eval_operands("new", arg_exprs, activation, original_expr_str, count=1)
        if not isinstance(class_name, str):
            raise SexpEvaluationError(f"'new' requires a name string, got {print_value(class_name)}.", original_expr_str)
        return ReceiverObject(str(class_name))

    def apply_slot_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        obj, slot_name = self._eval_operands("slot", arg_exprs, activation, original_expr_str, count=2)
        if not isinstance(obj, ReceiverObject):
            raise SexpEvaluationError(f"'slot' argument 1 must be an object, got {print_value(obj)}.", original_expr_str)
        return obj.get_slot(str(slot_name))

    def apply_slot_put_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        obj, slot_name, value = self._eval_operands("slot-put!", arg_exprs, activation, original_expr_str, count=3)
        if not isinstance(obj, ReceiverObject):
            raise SexpEvaluationError(f"'slot-put!' argument 1 must be an object, got {print_value(obj)}.", original_expr_str)
        return obj.set_slot(str(slot_name), value)

    # --- Contexts ---

    def apply_this_context_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Activation:
        """(this-context): the activation evaluating this expression, as a first-class value."""
        self._eval_operands("this-context", arg_exprs, activation, original_expr_str, count=0)
        return activation

    def apply_describe_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Activation:
        """(describe context): writes the context and its lexical chain as JSON. Answers the context."""
        (context,) = self._eval_operands("describe", arg_exprs, activation, original_expr_str, count=1)
        if not isinstance(context, Activation):
            raise SexpEvaluationError(f"'describe' requires a context, got {print_value(context)}.", original_expr_str)
        print(context.snapshot().model_dump_json(indent=2), file=self.evaluator.output)
        return context

    # --- Output ---

    def apply_print_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """(print value): writes the value (strings unquoted) and a newline to the evaluator output. Answers value."""
        (value,) = self._eval_operands("print", arg_exprs, activation, original_expr_str, count=1)
        print(print_value(value, quote_strings=False), file=self.evaluator.output)
        return value

    def apply_log_message_primitive(self, arg_exprs: List[SexpNode], activation: Activation, original_expr_str: str) -> Any:
        """(log-message value...): logs the printed values at INFO level. Answers nil."""
        values = self.evaluator.eval_args(arg_exprs, activation)
        message = " ".join(print_value(v, quote_strings=False) for v in values)
        logger.info(f"SEXP LOG: {message}")
        return NIL
