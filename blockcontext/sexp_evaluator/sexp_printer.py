"""Printed representation of runtime values for the REPL and the 'print' primitive."""
from typing import Any, Optional, Set

from blockcontext.sexp_parser.sexp_parser import is_symbol, symbol_name
from .sexp_activation import Activation
from .sexp_closure import Closure, Method
from .sexp_values import NIL, ReceiverObject

RECURSIVE_COLLECTION = "#(...)"


def print_value(value: Any, quote_strings: bool = True, _seen: Optional[Set[int]] = None) -> str:
    """
    Renders a value the way the REPL shows it.

    nil, true/false, 'strings' (quoted unless quote_strings is False),
    #(...) for lists, <block/N> for closures, 'a Name' for receivers,
    <context label> for activations. A list met again inside itself prints
    as #(...).
    """
    if value is NIL or value is None:
        return "nil"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if is_symbol(value):
        return f"#{symbol_name(value)}"
    if isinstance(value, str):
        return f"'{value}'" if quote_strings else value
    if isinstance(value, list):
        seen = _seen if _seen is not None else set()
        if id(value) in seen:
            return RECURSIVE_COLLECTION
        seen.add(id(value))
        try:
            return "#(" + " ".join(print_value(item, _seen=seen) for item in value) + ")"
        finally:
            seen.discard(id(value))
    if isinstance(value, Closure):
        return f"<block/{value.num_args}>"
    if isinstance(value, Method):
        return f"<method {value.selector}/{value.num_args}>"
    if isinstance(value, ReceiverObject):
        return repr(value)
    if isinstance(value, Activation):
        return f"<context {value.label}>"
    return str(value)
