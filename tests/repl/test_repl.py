"""Tests for the REPL Interface."""
import pytest
from unittest.mock import patch, MagicMock
from io import StringIO

from blockcontext.repl.repl import Repl, open_paren_balance
from blockcontext.sexp_evaluator.sexp_evaluator import SexpEvaluator
from blockcontext.system.models import EvaluatorConfig


@pytest.fixture
def repl_output():
    """Captures everything the REPL prints."""
    return StringIO()

@pytest.fixture
def repl_instance(repl_output):
    """Fixture for a REPL whose evaluator and prompt output share one stream."""
    evaluator = SexpEvaluator(output_stream=repl_output)
    return Repl(evaluator, output_stream=repl_output)


class TestOpenParenBalance:
    """Tests for the continuation-line counter."""

    @pytest.mark.parametrize("text, expected", [
        ("(+ 1 2)", 0),
        ("(define x", 1),
        ("((", 2),
        ("(print \"(\")", 0),
        ("(print \"a \\\" (\"", 1),
        ("(a ; (((\n)", 0),
        (")", -1),
    ])
    def test_balance(self, text, expected):
        assert open_paren_balance(text) == expected


class TestRepl:
    """Tests for the REPL class."""

    def test_init(self, repl_instance):
        """Test REPL initialization."""
        assert repl_instance.verbose is False
        for command in ("/help", "/exit", "/reset", "/verbose", "/globals", "/methods"):
            assert command in repl_instance.commands

    def test_process_input_command(self, repl_instance):
        """Test processing a command input."""
        with patch.object(repl_instance, '_handle_command') as mock_handle_command:
            repl_instance._process_input("/help")
            mock_handle_command.assert_called_once_with("/help")

    def test_process_input_expression(self, repl_instance):
        """Test processing an expression input."""
        with patch.object(repl_instance, '_handle_expression') as mock_handle_expression:
            repl_instance._process_input("  (+ 1 2)  ")
            mock_handle_expression.assert_called_once_with("(+ 1 2)")

    def test_process_input_blank(self, repl_instance, repl_output):
        repl_instance._process_input("   ")
        assert repl_output.getvalue() == ""

    def test_handle_command_known(self, repl_instance):
        """Test handling a known command."""
        mock_cmd = MagicMock()
        repl_instance.commands["/test"] = mock_cmd

        repl_instance._handle_command("/test arg1 arg2")
        mock_cmd.assert_called_once_with("arg1 arg2")

    def test_handle_command_unknown(self, repl_instance, repl_output):
        """Test handling an unknown command."""
        repl_instance._handle_command("/unknown")
        assert "Unknown command: /unknown" in repl_output.getvalue()
        assert "Type /help for available commands" in repl_output.getvalue()

    def test_handle_expression_prints_value(self, repl_instance, repl_output):
        assert repl_instance._handle_expression("(array 1 \"a\")") == [1, "a"]
        assert repl_output.getvalue() == "#(1 'a')\n"

    def test_handle_expression_print_then_value(self, repl_instance, repl_output):
        repl_instance._handle_expression("(print \"hi\")")
        assert repl_output.getvalue() == "hi\n'hi'\n"

    def test_handle_expression_self_containing_collection(self, repl_instance, repl_output):
        """Echoing a collection that contains itself keeps the session alive."""
        repl_instance._process_input("(declare c) (set! c (ordered)) (add! c c) c")
        assert repl_output.getvalue() == "#(#(...))\n"
        repl_instance._process_input("(+ 1 2)")
        assert repl_output.getvalue().endswith("3\n")

    def test_handle_expression_quiet(self, repl_output):
        evaluator = SexpEvaluator(config=EvaluatorConfig(echo_results=False), output_stream=repl_output)
        repl = Repl(evaluator, output_stream=repl_output)
        assert repl._handle_expression("(+ 1 2)") == 3
        assert repl_output.getvalue() == ""

    def test_handle_expression_error(self, repl_instance, repl_output):
        assert repl_instance._handle_expression("(+ nil 1)") is None
        output = repl_output.getvalue()
        assert output.startswith("Error (SexpEvaluationError): '+' argument 1 must be a number, got nil.")
        assert "Expression:" not in output

    def test_handle_expression_error_verbose(self, repl_instance, repl_output):
        repl_instance.verbose = True
        repl_instance._handle_expression("(value 5)")
        assert "Expression:" in repl_output.getvalue()

    def test_handle_expression_syntax_error(self, repl_instance, repl_output):
        repl_instance._handle_expression("(a))")
        assert repl_output.getvalue().startswith("Error (SexpSyntaxError):")

    def test_each_input_has_own_top_level(self, repl_instance, repl_output):
        """Declarations end with their input; globals persist."""
        repl_instance._handle_expression("(declare t) (set! t 1) (define g 2)")
        repl_instance._handle_expression("t")
        assert "Error (UnresolvedNameError)" in repl_output.getvalue()
        assert repl_instance._handle_expression("g") == 2

    def test_cmd_help(self, repl_instance, repl_output):
        repl_instance._cmd_help("")
        assert "/globals" in repl_output.getvalue()
        assert "/exit" in repl_output.getvalue()

    def test_cmd_verbose(self, repl_instance, repl_output):
        """Test verbose command toggling and explicit values."""
        repl_instance._cmd_verbose("")
        assert repl_instance.verbose is True
        repl_instance._cmd_verbose("off")
        assert repl_instance.verbose is False
        repl_instance._cmd_verbose("on")
        assert repl_instance.verbose is True
        assert "Verbose mode: on" in repl_output.getvalue()

    def test_cmd_verbose_invalid(self, repl_instance, repl_output):
        repl_instance._cmd_verbose("maybe")
        assert repl_instance.verbose is False
        assert "Invalid option: maybe" in repl_output.getvalue()

    def test_cmd_globals(self, repl_instance, repl_output):
        repl_instance._cmd_globals("")
        assert "No globals defined" in repl_output.getvalue()
        repl_instance.evaluator.run_program("(define g 7) (define blk (lambda (x) x))")
        repl_instance._cmd_globals("")
        assert "  blk = <block/1>\n  g = 7\n" in repl_output.getvalue()

    def test_cmd_methods(self, repl_instance, repl_output):
        repl_instance._cmd_methods("")
        assert "No methods defined" in repl_output.getvalue()
        repl_instance.evaluator.run_program("(defmethod area (w h) (* w h))")
        repl_instance._cmd_methods("")
        assert "  area (w h)" in repl_output.getvalue()

    def test_cmd_reset(self, repl_instance, repl_output):
        repl_instance.evaluator.run_program("(define g 7) (defmethod m () 1)")
        repl_instance._cmd_reset("")
        assert repl_instance.evaluator.globals.names() == []
        assert repl_instance.evaluator.methods == {}
        assert "Session reset" in repl_output.getvalue()

    def test_cmd_exit(self, repl_instance, repl_output):
        """Test exit command."""
        with pytest.raises(SystemExit) as excinfo:
            repl_instance._cmd_exit("")
        assert excinfo.value.code == 0
        assert "Exiting..." in repl_output.getvalue()

    def test_start_continues_unbalanced_lines(self, repl_instance, repl_output):
        """Input spanning several lines is evaluated once parentheses balance."""
        with patch('builtins.input', side_effect=["(define x", "  5)", "x", EOFError()]) as mock_input:
            repl_instance.start()
        lines = repl_output.getvalue().splitlines()
        assert lines.count("5") == 2
        assert lines[-1] == "Exiting..."
        prompts = [c.args[0] for c in mock_input.call_args_list]
        assert prompts == ["blk> ", "...> ", "blk> ", "blk> "]

    def test_start_keyboard_interrupt(self, repl_instance, repl_output):
        with patch('builtins.input', side_effect=KeyboardInterrupt()):
            repl_instance.start()
        assert "Exiting..." in repl_output.getvalue()
