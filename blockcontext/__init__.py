"""blockcontext: closures, activation records and non-local variable capture.

The core evaluates S-expression programs in which blocks capture the
activation that created them, share variable cells with it, and outlive it.
"""

from blockcontext.sexp_evaluator.sexp_evaluator import SexpEvaluator
from blockcontext.sexp_evaluator.sexp_activation import Activation, Cell
from blockcontext.sexp_evaluator.sexp_closure import Closure
from blockcontext.sexp_evaluator.sexp_values import NIL

__all__ = ["SexpEvaluator", "Activation", "Cell", "Closure", "NIL"]
