"""Tests for the REPL driver, using a stand-in engine."""

import pytest

from cli_calc.errors import EvaluationError
from cli_calc.memory import Memory
from cli_calc.persistence import SlotStore
from cli_calc.repl import CLEAR_SCREEN, LOST_HINT, Repl, complete


def fake_evaluate(expression):
    """Adds up integers separated by '+'."""
    try:
        return sum(int(part) for part in expression.split("+")), None
    except ValueError:
        return None, EvaluationError(f"Could not understand expression '{expression}'")


@pytest.fixture
def repl(tmp_path):
    return Repl(Memory(), SlotStore(tmp_path / "data"), fake_evaluate)


def feed(lines):
    """read_line stand-in that ends with EOF."""
    remaining = list(lines)

    def read_line(prompt):
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    return read_line


def test_expression_is_stored_under_next_number(repl, capsys):
    repl.handle("1 + 2")
    repl.handle("4")

    out = capsys.readouterr().out
    assert "  $1 = 3\n" in out
    assert "  $2 = 4\n" in out
    assert repl.memory.get("_") == 4


def test_named_assignment(repl, capsys):
    repl.handle("$total = 2 + 2")
    assert repl.memory.get("total") == 4
    assert repl.memory.get("_") == 4
    assert repl.memory.next_auto_name == 1
    assert "  $total = 4" in capsys.readouterr().out


def test_variables_are_substituted(repl, capsys):
    repl.handle("10")
    repl.handle("$x = $1 + 5")
    repl.handle("$x + $_")
    assert repl.memory.get("x") == 15
    assert repl.memory.get("2") == 30
    assert "  $2 = 30" in capsys.readouterr().out


def test_raw_assignment_is_not_evaluated(repl, capsys):
    repl.handle("$y <= $x + 1")
    assert repl.memory.get("y") == "$x + 1"
    assert "_" not in repl.memory
    assert "  $y = $x + 1" in capsys.readouterr().out


def test_raw_assignment_builds_formulas(repl):
    repl.handle("$a <= 1 + $b")
    repl.handle("$b <= 2")
    repl.handle("$a")
    assert repl.memory.get("1") == 3


def test_evaluation_error_is_reported(repl, capsys):
    assert repl.handle("banana") is True
    err = capsys.readouterr().err
    assert err == f"  Could not understand expression 'banana'. {LOST_HINT}\n"
    assert len(repl.memory) == 0


def test_circular_reference_is_reported(repl, capsys):
    repl.handle("$a <= $b")
    repl.handle("$b <= $a")
    repl.handle("$a + 1")
    err = capsys.readouterr().err
    assert "circular reference" in err
    assert "1" not in repl.memory


def test_delete_variable(repl, capsys):
    repl.handle("$x = 1")
    repl.handle("delete $x")
    assert "x" not in repl.memory
    assert "  Variable $x deleted." in capsys.readouterr().out


def test_delete_missing_variable(repl, capsys):
    repl.handle("delete $ghost")
    assert capsys.readouterr().err == f"  Variable $ghost does not exist. {LOST_HINT}\n"


def test_delete_all(repl, capsys):
    repl.handle("1")
    repl.handle("2")
    repl.handle("delete all")
    assert len(repl.memory) == 0
    repl.handle("3")
    assert repl.memory.get("1") == 3
    assert "  All variables deleted." in capsys.readouterr().out


def test_save_restore_and_list(repl, capsys):
    repl.handle("$rent = 1200")
    repl.handle("save budget")
    repl.handle("delete all")
    repl.handle("restore budget")
    assert repl.memory.get("rent") == 1200

    repl.handle("list")
    out = capsys.readouterr().out
    assert "  Saved contents of memory to 'budget'." in out
    assert "  Restored contents of memory from 'budget'." in out
    assert "  $_ = 1200\n  $rent = 1200\n" in out
    assert f"  Saved memory files in {repl.slots.data_dir}:\n    budget\n" in out


def test_restore_failure_keeps_memory(repl, capsys):
    repl.handle("7")
    repl.handle("load nothing")
    assert repl.memory.get("1") == 7
    err = capsys.readouterr().err
    assert err.startswith("  Error restoring memory from file: No saved memory file named 'nothing'.")


def test_list_without_saved_files(repl, capsys):
    repl.handle("ls")
    out = capsys.readouterr().out
    assert "  Memory is empty.\n" in out
    assert "  There are no saved memory files." in out


def test_help_and_clear_screen(repl, capsys):
    repl.handle("help")
    repl.handle("cs")
    out = capsys.readouterr().out
    assert "delete all" in out
    assert out.endswith(CLEAR_SCREEN)


def test_blank_line_does_nothing(repl, capsys):
    assert repl.handle("   ") is True
    assert capsys.readouterr() == ("", "")


def test_quit(repl):
    assert repl.handle("quit") is False
    assert repl.handle("q") is False


def test_run_until_quit(repl):
    status = repl.run(feed(["1 + 1", "quit", "2 + 2"]))
    assert status == 0
    assert repl.memory.get("1") == 2
    assert "2" not in repl.memory


def test_run_ends_on_eof(repl):
    assert repl.run(feed(["5"])) == 0
    assert repl.memory.get("1") == 5


def test_run_ends_on_interrupt(repl):
    def interrupted(prompt):
        raise KeyboardInterrupt

    assert repl.run(interrupted) == 0


def test_run_survives_unexpected_errors(tmp_path, capsys):
    def exploding_evaluate(expression):
        raise RuntimeError("kaboom")

    repl = Repl(Memory(), SlotStore(tmp_path), exploding_evaluate)
    assert repl.run(feed(["1", "quit"])) == 0
    assert "Error processing input: kaboom" in capsys.readouterr().err


def test_complete(repl):
    repl.memory.store("rate", 1)
    repl.memory.store(None, 2)
    repl.handle("save rainy")

    assert complete("$r", repl.memory, repl.slots) == ["$rate"]
    assert complete("$", repl.memory, repl.slots) == ["$rate"]
    assert "rainy" in complete("ra", repl.memory, repl.slots)
    assert complete("QU", repl.memory, repl.slots) == ["quit", "quarter"]


def test_completion_offers_no_function_names(repl):
    """Only words the engine understands are offered."""
    offered = complete("s", repl.memory, repl.slots)
    assert "square" in offered
    assert "sqrt" not in offered
    assert "sin" not in offered
    assert complete("hal", repl.memory, repl.slots) == []
