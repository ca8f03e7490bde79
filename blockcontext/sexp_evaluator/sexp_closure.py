"""
Defines the Closure class for blocks created by the 'lambda'/'block' form, the
Method class for bodies registered with 'defmethod', and the static scan that
collects a body's declared temporaries.
"""
import logging
from typing import List, Any

from blockcontext.sexp_parser.sexp_parser import is_symbol, symbol_name
from blockcontext.system.errors import SexpEvaluationError
from .sexp_activation import Activation, SELF_NAME

logger = logging.getLogger(__name__)

DECLARE_FORM = "declare"
SEQUENCE_FORM = "progn"


def parse_parameter_list(params_node: Any, original_expr_str: str) -> List[str]:
    """Validates a parameter list node and returns the parameter names."""
    if not isinstance(params_node, list):
        raise SexpEvaluationError("Parameter definition must be a list of symbols.", expression=str(params_node))
    names: List[str] = []
    for p_node in params_node:
        if not is_symbol(p_node):
            raise SexpEvaluationError(
                f"Parameters must be symbols, got {type(p_node).__name__}: {p_node}",
                expression=original_expr_str
            )
        name = symbol_name(p_node)
        if name == SELF_NAME or name in names:
            raise SexpEvaluationError(f"Invalid or duplicate parameter name '{name}'", expression=original_expr_str)
        names.append(name)
    return names


def collect_temporaries(body: List[Any], params: List[str], original_expr_str: str = "") -> List[str]:
    """
    Collects the names declared by '(declare ...)' statements of a body.

    Only statements of the body itself (and of 'progn' sequences nested directly in
    it) count; a declaration inside any other form belongs to no activation.

    Raises:
        SexpEvaluationError: On a non-symbol name, or a name declared twice or
                             clashing with a parameter.
    """
    temporaries: List[str] = []
    for statement in body:
        if not (isinstance(statement, list) and statement):
            continue
        if is_symbol(statement[0], SEQUENCE_FORM):
            temporaries.extend(collect_temporaries(statement[1:], params + temporaries, original_expr_str))
        elif is_symbol(statement[0], DECLARE_FORM):
            for name_node in statement[1:]:
                if not is_symbol(name_node):
                    raise SexpEvaluationError(
                        f"'declare' expects symbols, got {type(name_node).__name__}: {name_node}",
                        expression=original_expr_str or str(statement)
                    )
                name = symbol_name(name_node)
                if name == SELF_NAME or name in params or name in temporaries:
                    raise SexpEvaluationError(
                        f"Name '{name}' is already defined in this scope",
                        expression=original_expr_str or str(statement)
                    )
                temporaries.append(name)
    return temporaries


class Closure:
    def __init__(self, params: List[str], temporaries: List[str], body: List[Any], home: Activation):
        """
        Represents a block: code paired with the activation that was executing
        when the block literal was evaluated.

        Args:
            params: Formal parameter names, in order.
            temporaries: Names declared in the body; each call gets fresh cells for them.
            body: AST nodes of the body expressions.
            home: The activation captured at creation. Fixed for the closure's lifetime;
                  it is the parent of every call activation and the source of 'self'.
        """
        self.params: List[str] = params
        self.temporaries: List[str] = temporaries
        self.body: List[Any] = body
        self.home: Activation = home

        logger.debug(f"Closure created: params=({', '.join(params)}), num_body_exprs={len(body)}, home={home.label}")

    @property
    def num_args(self) -> int:
        return len(self.params)

    def __repr__(self):
        return f"<Closure params=({', '.join(self.params)}) body_exprs#={len(self.body)} home={self.home.label!r}>"


class Method:
    """A named body invoked with an explicit receiver. Unlike a Closure it has no home."""

    def __init__(self, selector: str, params: List[str], temporaries: List[str], body: List[Any]):
        self.selector = selector
        self.params = params
        self.temporaries = temporaries
        self.body = body

    @property
    def num_args(self) -> int:
        return len(self.params)

    def __repr__(self):
        return f"<Method {self.selector} params=({', '.join(self.params)})>"
