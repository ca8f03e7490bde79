"""
Activation records and variable cells.

An Activation represents one execution of a callable body (top-level doit,
method or block). It owns one Cell per parameter and declared temporary, and
points at its enclosing lexical activation. Cells are shared by reference, so
a closure that captured an activation keeps its cells alive after the call
that created them has returned.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from blockcontext.system.models import ActivationKind, ActivationSnapshot
from .sexp_values import NIL

logger = logging.getLogger(__name__)

SELF_NAME = "self"


class Cell:
    """A single mutable storage location. Identity matters: closures share cells, not values."""
    __slots__ = ("value",)

    def __init__(self, value: Any = NIL):
        self.value = value

    def __repr__(self) -> str:
        return f"<Cell id={id(self)} value={self.value!r}>"


class Activation:
    """
    Represents one invocation of a callable body.

    The set of names is fixed when the activation is created; cell values may be
    changed any number of times by anything holding the activation.
    """

    def __init__(
        self,
        label: str,
        kind: ActivationKind,
        names: Iterable[str] = (),
        parent: Optional['Activation'] = None,
        receiver: Any = NIL,
    ):
        """
        Initializes a new Activation.

        Args:
            label: Human readable name used in errors and snapshots (e.g. 'an Apple>>total').
            kind: 'top', 'method' or 'block'. Only non-block activations bind 'self'.
            names: Parameter and temporary names, each given a fresh cell holding NIL.
            parent: The enclosing lexical activation (a block's home), or None.
            receiver: Value of 'self' for top/method activations. Ignored for blocks.
        """
        self.label = label
        self.kind = kind
        self.parent = parent
        self.returned = False
        self._cells: Dict[str, Cell] = {}
        if kind != 'block':
            self._cells[SELF_NAME] = Cell(receiver)
        for name in names:
            self._cells[name] = Cell()
        logger.debug(f"Activation created: {self!r}")

    # --- Cells ---

    def declares(self, name: str) -> bool:
        """True if this activation itself owns a cell for name."""
        return name in self._cells

    def bind(self, name: str, value: Any) -> None:
        """Initialises one of this activation's own cells. The name must already be declared."""
        if name not in self._cells:
            raise KeyError(f"'{name}' is not declared in {self.label}")
        self._cells[name].value = value

    def find_cell(self, name: str) -> Optional[Cell]:
        """
        Finds the cell for name by walking this activation and then its
        enclosing activations. The caller of a block is never consulted.

        Returns:
            The cell, or None if no activation on the chain declares name.
        """
        activation: Optional[Activation] = self
        while activation is not None:
            cell = activation._cells.get(name)
            if cell is not None:
                logger.debug(f"Resolved '{name}' in {activation.label} (cell id={id(cell)})")
                return cell
            activation = activation.parent
        logger.debug(f"'{name}' not found on chain starting at {self.label}")
        return None

    # --- Chain ---

    @property
    def receiver(self) -> Any:
        """The implicit receiver, resolved through the chain like any other name."""
        cell = self.find_cell(SELF_NAME)
        return NIL if cell is None else cell.value

    def home_method_activation(self) -> Optional['Activation']:
        """The first non-block activation on the chain: the target of a non-local return."""
        activation: Optional[Activation] = self
        while activation is not None and activation.kind == 'block':
            activation = activation.parent
        return activation

    def snapshot(self) -> ActivationSnapshot:
        """Returns a printable model of this activation and its enclosing chain."""
        from .sexp_printer import print_value
        return ActivationSnapshot(
            label=self.label,
            kind=self.kind,
            returned=self.returned,
            variables={name: print_value(cell.value) for name, cell in self._cells.items()},
            parent=self.parent.snapshot() if self.parent is not None else None,
        )

    def __repr__(self) -> str:
        parent_label = self.parent.label if self.parent else None
        return f"<Activation {self.label!r} kind={self.kind} parent={parent_label!r} names={list(self._cells)}>"


class GlobalScope:
    """Shared global bindings, consulted after the whole lexical chain."""

    def __init__(self):
        self._cells: Dict[str, Cell] = {}

    def define(self, name: str, value: Any) -> Cell:
        """Defines name, or updates its existing cell in place so earlier readers see the change."""
        cell = self._cells.get(name)
        if cell is None:
            cell = Cell(value)
            self._cells[name] = cell
            logger.debug(f"Global '{name}' defined")
        else:
            cell.value = value
            logger.debug(f"Global '{name}' redefined")
        return cell

    def find_cell(self, name: str) -> Optional[Cell]:
        return self._cells.get(name)

    def names(self) -> List[str]:
        return sorted(self._cells)

    def reset(self) -> None:
        self._cells.clear()


class NonLocalReturn(Exception):
    """
    Control transfer for '(return expr)'. Unwinds intervening invocations until
    the invocation running the target activation catches it.
    """

    def __init__(self, target: Activation, value: Any):
        super().__init__(f"non-local return to {target.label}")
        self.target = target
        self.value = value
