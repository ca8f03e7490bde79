"""
Implementation of the SexpParser using the 'sexpdata' library.
Parses S-expression source text into Python ASTs (nested lists and atoms).
"""

import logging
from typing import Any, List
from io import StringIO
from sexpdata import load, Symbol, ExpectNothing, ExpectClosingBracket

from blockcontext.system.errors import SexpSyntaxError

logger = logging.getLogger(__name__)

PROGRAM_WRAPPER = "progn"


def symbol_name(node: Any) -> str:
    """Returns the name of a sexpdata Symbol as a plain string."""
    if isinstance(node, str):
        return str(node)
    return node.value()


def is_symbol(node: Any, name: str = None) -> bool:
    """True if node is a Symbol (optionally with the given name)."""
    if not isinstance(node, Symbol):
        return False
    return name is None or symbol_name(node) == name


class SexpParser:
    """
    Parses S-expression strings into Python ASTs (nested lists/atoms).

    Uses the 'sexpdata' library for the underlying parsing mechanism.
    'true' and 'false' become Python booleans; 'nil' is left as a symbol and is
    evaluated to the no-value sentinel by the evaluator.
    """

    def parse_string(self, sexp_string: str) -> Any:
        """
        Parses a single S-expression from a string.

        Args:
            sexp_string: The string containing the S-expression.

        Returns:
            The parsed S-expression as a Python AST (nested lists/atoms).

        Raises:
            SexpSyntaxError: If the input string has syntax errors, is empty,
                             or contains more than one top-level expression.
            TypeError: If the input is not a string.
        """
        if not isinstance(sexp_string, str):
            raise TypeError("Input must be a string.")

        logger.debug(f"Attempting to parse S-expression string: '{sexp_string}'")
        stripped_string = sexp_string.strip()

        if not stripped_string:
            logger.error("S-expression parsing failed: Input string is empty or contains only whitespace.")
            raise SexpSyntaxError(
                "Input string is empty or contains only whitespace.",
                sexp_string
            )

        forms = self._load_forms(stripped_string, sexp_string)
        if not forms:
            raise SexpSyntaxError("Input string contains no expression.", sexp_string)
        if len(forms) > 1:
            logger.error(f"Unexpected content after main expression: {forms[1:]}")
            raise SexpSyntaxError(
                "Multiple top-level S-expressions found. Use (progn ...) or ensure single expression.",
                sexp_string,
                error_details=f"Found {len(forms)} expressions"
            )
        logger.debug(f"Successfully parsed AST: {forms[0]!r}")
        return forms[0]

    def parse_program(self, source: str) -> List[Any]:
        """
        Parses zero or more top-level S-expressions.

        Args:
            source: Program text, possibly spanning several lines and containing ';' comments.

        Returns:
            The list of parsed top-level expressions, in source order.

        Raises:
            SexpSyntaxError: If the text is not a well-formed sequence of expressions.
            TypeError: If the input is not a string.
        """
        if not isinstance(source, str):
            raise TypeError("Input must be a string.")
        if not source.strip():
            return []
        forms = self._load_forms(source, source)
        logger.debug(f"Parsed program with {len(forms)} top-level expressions")
        return forms

    def _load_forms(self, text: str, original: str) -> List[Any]:
        # Wrapping in a single list lets sexpdata read any number of forms at once.
        sio = StringIO(f"({PROGRAM_WRAPPER}\n{text}\n)")
        try:
            parsed = load(sio,
                          nil=None, # Keep 'nil' as a symbol
                          true='true', # Map 'true' symbol to True
                          false='false' # Map 'false' symbol to False
                         )
        except ExpectClosingBracket as e:
            logger.error(f"S-expression syntax error (Unbalanced Parentheses): {e}")
            raise SexpSyntaxError("S-expression syntax error: Unbalanced parentheses or brackets.", original, error_details=str(e)) from e
        except ExpectNothing as e:
            logger.error(f"S-expression parsing failed: Unexpected content after main expression. Details: {e}")
            raise SexpSyntaxError("Unexpected content after the main expression.", original, error_details=str(e)) from e
        except AssertionError as e:
            # sexpdata asserts a single top-level form; a stray ')' closes the wrapper early
            logger.error(f"S-expression syntax error (unbalanced closing bracket): {e}")
            raise SexpSyntaxError("S-expression syntax error: Unbalanced parentheses or brackets.", original, error_details=str(e)) from e
        except ValueError as e:
            logger.error(f"S-expression syntax error (ValueError): {e}")
            raise SexpSyntaxError(f"S-expression syntax error: {e}", original, error_details=str(e)) from e
        except Exception as e: # Catch-all for parser failures not covered above
            logger.exception(f"Unexpected error during S-expression parsing: {e}")
            raise SexpSyntaxError(
                f"An unexpected error occurred during S-expression parsing: {e}",
                original,
                error_details=str(e)
            ) from e

        if not (isinstance(parsed, list) and parsed and is_symbol(parsed[0], PROGRAM_WRAPPER)):
            raise SexpSyntaxError("S-expression syntax error: Unbalanced parentheses or brackets.", original)
        return list(parsed[1:])
