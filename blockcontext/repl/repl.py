"""REPL interface for interactive sessions."""
from typing import Any
import sys
import logging

from blockcontext.sexp_evaluator.sexp_evaluator import SexpEvaluator
from blockcontext.sexp_evaluator.sexp_printer import print_value
from blockcontext.system.errors import SexpEvaluationError, SexpSyntaxError

logger = logging.getLogger(__name__)

PROMPT = "blk> "
CONTINUATION_PROMPT = "...> "


def open_paren_balance(text: str) -> int:
    """Number of '(' not yet closed, ignoring string literals and ';' comments."""
    depth = 0
    in_string = False
    escaped = False
    in_comment = False
    for char in text:
        if in_comment:
            if char == "\n":
                in_comment = False
            continue
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == ";":
            in_comment = True
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
    return depth


class Repl:
    """Interactive REPL (Read-Eval-Print Loop) interface.

    Reads expressions (continuing across lines until parentheses balance),
    evaluates each input in a fresh top-level activation and prints the result.
    Globals and methods persist between inputs.
    """

    def __init__(self, evaluator: SexpEvaluator, output_stream=None):
        """Initialize the REPL interface.

        Args:
            evaluator: The SexpEvaluator holding globals and methods for the session
            output_stream: Optional output stream (defaults to sys.stdout)
        """
        self.evaluator = evaluator
        self.verbose = False  # Verbose mode off by default
        self.output = output_stream or sys.stdout
        self.commands = {
            "/help": self._cmd_help,
            "/exit": self._cmd_exit,
            "/reset": self._cmd_reset,
            "/verbose": self._cmd_verbose,
            "/globals": self._cmd_globals,
            "/methods": self._cmd_methods,
        }

    def start(self) -> None:
        """Start the REPL interface.

        Begins the interactive session, accepting user input until EOF,
        Ctrl-C or /exit.
        """
        print("blockcontext REPL", file=self.output)
        print("Type expressions or commands (/help for help)", file=self.output)

        buffer = ""
        while True:
            try:
                line = input(CONTINUATION_PROMPT if buffer else PROMPT)
            except (KeyboardInterrupt, EOFError):
                print("\nExiting...", file=self.output)
                break
            buffer = f"{buffer}\n{line}" if buffer else line
            if open_paren_balance(buffer) > 0:
                continue
            self._process_input(buffer)
            buffer = ""

    def _process_input(self, user_input: str) -> None:
        """Process user input.

        Args:
            user_input: Input from the user
        """
        user_input = user_input.strip()

        if not user_input:
            return

        if user_input.startswith("/"):
            self._handle_command(user_input)
        else:
            self._handle_expression(user_input)

    def _handle_command(self, command: str) -> None:
        """Handle a command input.

        Args:
            command: Command from the user
        """
        parts = command.split(maxsplit=1)
        cmd = parts[0].lower()
        args = parts[1] if len(parts) > 1 else ""

        if cmd in self.commands:
            self.commands[cmd](args)
        else:
            print(f"Unknown command: {cmd}", file=self.output)
            print("Type /help for available commands", file=self.output)

    def _handle_expression(self, source: str) -> Any:
        """Evaluate source and print its value, or report the error.

        Args:
            source: One or more top-level expressions
        """
        try:
            result = self.evaluator.run_program(source)
        except (SexpSyntaxError, SexpEvaluationError) as e:
            logger.debug(f"REPL input failed: {e}")
            message = str(e) if self.verbose else e.message
            print(f"Error ({type(e).__name__}): {message}", file=self.output)
            return None

        if self.evaluator.config.echo_results:
            print(print_value(result), file=self.output)
        return result

    def _cmd_help(self, args: str) -> None:
        """Handle the help command.

        Args:
            args: Command arguments
        """
        print("Available commands:", file=self.output)
        print("  /help - Show this help", file=self.output)
        print("  /globals - List global bindings", file=self.output)
        print("  /methods - List defined methods", file=self.output)
        print("  /reset - Forget all globals and methods", file=self.output)
        print("  /verbose [on|off] - Toggle verbose error reports", file=self.output)
        print("  /exit - Exit the REPL", file=self.output)

    def _cmd_reset(self, args: str) -> None:
        """Handle the reset command.

        Args:
            args: Command arguments
        """
        self.evaluator.globals.reset()
        self.evaluator.methods.clear()
        print("Session reset", file=self.output)

    def _cmd_verbose(self, args: str) -> None:
        """Handle the verbose command.

        Args:
            args: Command arguments
        """
        if not args:
            # Toggle verbose mode
            self.verbose = not self.verbose
        elif args.lower() in ["on", "true", "yes", "1"]:
            self.verbose = True
        elif args.lower() in ["off", "false", "no", "0"]:
            self.verbose = False
        else:
            print(f"Invalid option: {args}", file=self.output)
            print("Usage: /verbose [on|off]", file=self.output)
            return

        print(f"Verbose mode: {'on' if self.verbose else 'off'}", file=self.output)

    def _cmd_globals(self, args: str) -> None:
        names = self.evaluator.globals.names()
        if not names:
            print("No globals defined", file=self.output)
            return
        for name in names:
            cell = self.evaluator.globals.find_cell(name)
            print(f"  {name} = {print_value(cell.value)}", file=self.output)

    def _cmd_methods(self, args: str) -> None:
        if not self.evaluator.methods:
            print("No methods defined", file=self.output)
            return
        for selector in sorted(self.evaluator.methods):
            method = self.evaluator.methods[selector]
            print(f"  {selector} ({' '.join(method.params)})", file=self.output)

    def _cmd_exit(self, args: str) -> None:
        """Handle the exit command.

        Args:
            args: Command arguments
        """
        print("Exiting...", file=self.output)
        sys.exit(0)
