"""
Command line entry point.

Runs a program file, evaluates an expression given with -e, or starts the REPL.
Configuration comes from BLOCKCONTEXT_* environment variables, overridden by
command line options.
"""

import argparse
import sys
from typing import List, Optional

from pydantic import ValidationError

from blockcontext.config.logging_config import setup_logging, get_logger
from blockcontext.repl.repl import Repl
from blockcontext.sexp_evaluator.sexp_evaluator import SexpEvaluator
from blockcontext.sexp_evaluator.sexp_printer import print_value
from blockcontext.system.errors import SexpEvaluationError, SexpSyntaxError
from blockcontext.system.models import EvaluatorConfig

logger = get_logger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="blockcontext",
        description="Evaluate block/closure programs written as S-expressions.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("file", nargs="?", help="Program file to run. Starts the REPL when omitted.")
    parser.add_argument("-e", "--eval", dest="expression",
                        help="Evaluate EXPRESSION and print its value (not combinable with a file)")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Logging level (default from BLOCKCONTEXT_LOG_LEVEL, else WARNING)")
    parser.add_argument("--log-file", help="Write logs to this file instead of stderr")
    parser.add_argument("--max-depth", type=int, help="Maximum nested invocation depth")
    parser.add_argument("--quiet", action="store_true", help="Do not print expression values")
    args = parser.parse_args(argv)
    if args.file is not None and args.expression is not None:
        parser.error("give either a program file or -e EXPRESSION, not both")
    return args


def build_config(args: argparse.Namespace) -> EvaluatorConfig:
    """Merges environment configuration with command line overrides."""
    values = EvaluatorConfig.from_env().model_dump()
    if args.log_level:
        values["log_level"] = args.log_level
    if args.log_file:
        values["log_file"] = args.log_file
    if args.max_depth is not None:
        values["max_call_depth"] = args.max_depth
    if args.quiet:
        values["echo_results"] = False
    return EvaluatorConfig(**values)


def main(argv: Optional[List[str]] = None) -> int:
    """Runs the CLI and returns the process exit code."""
    args = parse_arguments(argv)
    try:
        config = build_config(args)
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_level, config.log_file)
    evaluator = SexpEvaluator(config=config)

    if args.expression is None and args.file is None:
        Repl(evaluator).start()
        return 0

    try:
        if args.file is not None:
            with open(args.file, "r", encoding="utf-8") as f:
                source = f.read()
            logger.info(f"Running program file {args.file}")
            result = evaluator.run_program(source)
        else:
            result = evaluator.evaluate_string(args.expression)
    except OSError as e:
        print(f"Cannot read {args.file}: {e}", file=sys.stderr)
        return 1
    except (SexpSyntaxError, SexpEvaluationError) as e:
        print(f"Error ({type(e).__name__}): {e}", file=sys.stderr)
        return 1

    # Program files report through print; only -e echoes its value
    if config.echo_results and args.file is None:
        print(print_value(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
