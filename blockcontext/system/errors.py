"""
System-wide custom error types.
"""
from typing import Optional


class SexpSyntaxError(ValueError):
    """
    Custom exception raised when S-expression parsing fails due to syntax errors.
    Inherits from ValueError for general compatibility but provides specific context.
    """
    def __init__(self, message: str, sexp_string: str, error_details: str = ""):
        """
        Initializes the SexpSyntaxError.

        Args:
            message: A high-level error message.
            sexp_string: The original S-expression string that caused the error.
            error_details: Specific details from the underlying parser, if available.
        """
        full_message = f"{message}\nInput: '{sexp_string}'"
        if error_details:
            full_message += f"\nDetails: {error_details}"
        super().__init__(full_message)
        self.message = message
        self.sexp_string = sexp_string
        self.error_details = error_details


class SexpEvaluationError(Exception):
    """
    Custom exception raised during the evaluation phase of S-expressions.
    Indicates runtime errors like unbound symbols, invalid arguments, type mismatches
    or operations applied to the no-value sentinel.
    """
    def __init__(self, message: str, expression: str = "", error_details: str = ""):
        """
        Initializes the SexpEvaluationError.

        Args:
            message: A high-level error message describing the evaluation failure.
            expression: The S-expression string or node being evaluated when the error occurred.
            error_details: Specific details about the error (e.g., from underlying exceptions).
        """
        full_message = f"{message}"
        if expression:
            full_message += f"\nExpression: '{expression}'"
        if error_details:
            full_message += f"\nDetails: {error_details}"
        super().__init__(full_message)
        self.message = message
        self.expression = expression
        self.error_details = error_details


class UnresolvedNameError(SexpEvaluationError):
    """Raised when a name is bound neither on the lexical chain nor globally."""
    def __init__(self, name: str, expression: str = ""):
        super().__init__(f"Unbound symbol: Name '{name}' is not defined.", expression=expression)
        self.name = name


class WrongArgumentCountError(SexpEvaluationError):
    """Raised by strict invocation when the supplied argument count differs from the parameter count."""
    def __init__(self, expected: int, supplied: int, expression: str = "", callable_name: Optional[str] = None):
        target = callable_name or "Block"
        super().__init__(
            f"Arity mismatch: {target} expects {expected} arguments, got {supplied}",
            expression=expression,
        )
        self.expected = expected
        self.supplied = supplied


class BlockCannotReturnError(SexpEvaluationError):
    """
    Raised when a non-local return targets a home activation that has already
    returned (a "dead home").
    """
    def __init__(self, home_label: str, expression: str = ""):
        super().__init__(
            f"Block cannot return: home context '{home_label}' has already returned",
            expression=expression,
        )
        self.home_label = home_label
