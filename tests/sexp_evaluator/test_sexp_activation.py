"""
Unit tests for Activation, Cell and GlobalScope.
"""

import pytest

from blockcontext.sexp_evaluator.sexp_activation import Activation, Cell, GlobalScope, NonLocalReturn
from blockcontext.sexp_evaluator.sexp_values import NIL, ReceiverObject
from blockcontext.system.errors import UnresolvedNameError

# --- Test Initialization ---

def test_names_start_as_nil():
    """Every declared name gets its own cell holding nil."""
    act = Activation("m", 'method', names=["a", "b"])
    assert act.find_cell("a").value is NIL
    assert act.find_cell("b").value is NIL
    assert act.find_cell("a") is not act.find_cell("b")

def test_method_and_top_bind_self():
    """Top-level and method activations own a 'self' cell holding the receiver."""
    receiver = ReceiverObject("Apple")
    method = Activation("an Apple>>total", 'method', receiver=receiver)
    top = Activation("doit", 'top')
    assert method.declares("self")
    assert method.receiver is receiver
    assert top.receiver is NIL

def test_block_has_no_self_cell():
    """A block activation resolves 'self' through its parent."""
    receiver = ReceiverObject("Apple")
    method = Activation("an Apple>>total", 'method', receiver=receiver)
    block = Activation("block in an Apple>>total", 'block', parent=method, receiver=ReceiverObject("Pear"))
    assert not block.declares("self")
    assert block.receiver is receiver
    assert block.find_cell("self") is method.find_cell("self")

def test_cell_defaults_to_nil():
    assert Cell().value is NIL
    assert Cell(3).value == 3

# --- Test bind ---

def test_bind_declared_name():
    act = Activation("m", 'method', names=["x"])
    act.bind("x", 10)
    assert act.find_cell("x").value == 10

def test_bind_undeclared_name_raises():
    """The set of names is fixed at creation."""
    act = Activation("m", 'method', names=["x"])
    with pytest.raises(KeyError):
        act.bind("y", 1)
    assert not act.declares("y")

# --- Test find_cell ---

def test_find_cell_walks_parent_chain():
    """Test finding names declared one and two levels up."""
    grandparent = Activation("doit", 'top', names=["g"])
    grandparent.bind("g", 5.5)
    parent = Activation("block in doit", 'block', names=["p"], parent=grandparent)
    parent.bind("p", "parent")
    child = Activation("block in block in doit", 'block', names=["c"], parent=parent)
    child.bind("c", [1, 2])

    assert child.find_cell("g").value == 5.5
    assert child.find_cell("p").value == "parent"
    assert child.find_cell("c").value == [1, 2]

def test_find_cell_shadowing():
    """The nearest declaration wins."""
    parent = Activation("doit", 'top', names=["x"])
    parent.bind("x", "outer")
    child = Activation("block in doit", 'block', names=["x"], parent=parent)
    child.bind("x", "inner")
    assert child.find_cell("x").value == "inner"
    assert parent.find_cell("x").value == "outer"

def test_find_cell_returns_shared_cell():
    """A child sees the parent's cell itself, not a copy of its value."""
    parent = Activation("doit", 'top', names=["t"])
    child = Activation("block in doit", 'block', parent=parent)
    child.find_cell("t").value = 33
    assert parent.find_cell("t").value == 33
    assert child.find_cell("t") is parent.find_cell("t")
    assert child.find_cell("nothing") is None

# --- Test resolve_cell ---

def test_resolve_cell_prefers_chain_over_globals(evaluator):
    evaluator.globals.define("t", "global")
    act = Activation("doit", 'top', names=["t"])
    assert evaluator.resolve_cell("t", act) is act.find_cell("t")

def test_resolve_cell_falls_back_to_globals(evaluator):
    cell = evaluator.globals.define("g", 1)
    act = Activation("block", 'block', parent=Activation("doit", 'top'))
    assert evaluator.resolve_cell("g", act) is cell

def test_resolve_cell_unbound_raises(evaluator):
    act = Activation("doit", 'top')
    with pytest.raises(UnresolvedNameError, match="Unbound symbol: Name 'missing' is not defined.") as excinfo:
        evaluator.resolve_cell("missing", act)
    assert excinfo.value.name == "missing"

# --- Test chain helpers ---

def test_home_method_activation_skips_blocks():
    method = Activation("a Thing>>run", 'method')
    block = Activation("block in a Thing>>run", 'block', parent=method)
    inner = Activation("block in block in a Thing>>run", 'block', parent=block)
    assert inner.home_method_activation() is method
    assert method.home_method_activation() is method

def test_home_method_activation_none_for_orphan_block():
    orphan = Activation("block", 'block')
    assert orphan.home_method_activation() is None

def test_snapshot_includes_chain():
    top = Activation("doit", 'top', names=["t"])
    top.bind("t", "x")
    block = Activation("block in doit", 'block', names=["i"], parent=top)
    block.bind("i", 3)
    top.returned = True

    snapshot = block.snapshot()
    assert snapshot.kind == 'block'
    assert snapshot.variables == {"i": "3"}
    assert snapshot.parent.variables == {"self": "nil", "t": "'x'"}
    assert snapshot.parent.returned is True
    assert snapshot.chain_labels() == ["block in doit", "doit"]

def test_non_local_return_carries_target():
    act = Activation("doit", 'top')
    nlr = NonLocalReturn(act, 5)
    assert nlr.target is act
    assert nlr.value == 5

# --- Test GlobalScope ---

def test_global_define_and_find():
    scope = GlobalScope()
    scope.define("b", 1)
    scope.define("a", 2)
    assert scope.find_cell("a").value == 2
    assert scope.find_cell("missing") is None
    assert scope.names() == ["a", "b"]

def test_global_redefine_keeps_cell():
    """Redefinition updates the existing cell so earlier holders see it."""
    scope = GlobalScope()
    first = scope.define("g", 1)
    second = scope.define("g", 2)
    assert first is second
    assert first.value == 2

def test_global_reset():
    scope = GlobalScope()
    scope.define("g", 1)
    scope.reset()
    assert scope.names() == []
