"""
Shared fixtures for the blockcontext test suite.
"""

import io

import pytest

from blockcontext.sexp_evaluator.sexp_evaluator import SexpEvaluator
from blockcontext.sexp_parser.sexp_parser import SexpParser
from blockcontext.system.models import EvaluatorConfig


@pytest.fixture
def output():
    """Captures what 'print' and 'describe' write."""
    return io.StringIO()


@pytest.fixture
def evaluator(output):
    """Provides a SexpEvaluator writing to the captured output stream."""
    return SexpEvaluator(config=EvaluatorConfig(), output_stream=output)


@pytest.fixture
def run(evaluator):
    """Runs program text in the shared evaluator and returns the last value."""
    def _run(source):
        return evaluator.run_program(source)
    return _run


@pytest.fixture
def parser():
    """Provides a SexpParser instance for tests."""
    return SexpParser()


@pytest.fixture
def parse(parser):
    """Parses exactly one expression."""
    return parser.parse_string
