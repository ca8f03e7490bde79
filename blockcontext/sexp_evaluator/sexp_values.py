"""
Runtime values that are not plain Python data: the no-value sentinel and
minimal receiver objects.
"""
from typing import Any, Dict


class _NoValue:
    """The single 'no value' sentinel. Unassigned temporaries and unfilled lenient parameters hold it."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "nil"

    def __reduce__(self):
        return (_NoValue, ())


NIL = _NoValue()


class ReceiverObject:
    """
    A minimal object usable as the implicit receiver of a method.
    Carries a display name and a dictionary of named slots.
    """

    def __init__(self, class_name: str):
        self.class_name = class_name
        self.slots: Dict[str, Any] = {}

    def get_slot(self, name: str) -> Any:
        return self.slots.get(name, NIL)

    def set_slot(self, name: str, value: Any) -> Any:
        self.slots[name] = value
        return value

    def __repr__(self) -> str:
        starts_with_vowel = bool(self.class_name) and self.class_name[0].lower() in "aeiou"
        article = "an" if starts_with_vowel else "a"
        return f"{article} {self.class_name}"
