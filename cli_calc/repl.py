import atexit
import logging
from pathlib import Path
from typing import Any, Callable, List, Optional, TextIO, Tuple

from cli_calc.commands import Command, CommandKind, classify
from cli_calc.config import HISTORY_FILE, HISTORY_LENGTH
from cli_calc.errors import EvaluationError
from cli_calc.memory import Memory
from cli_calc.persistence import SlotStore

logger = logging.getLogger(__name__)

USAGE = """\
Usage
  Type an expression and press Enter. Every result is stored in a numbered
  variable ($1, $2, ...) that later expressions can use. To pick the name
  yourself, assign with '=': '$rent = 1200 * 12'.

Commands
  help            Shows this message.
  list            Shows the variables in memory and the saved memory files.
  delete $var     Deletes one variable.
  delete all      Deletes every variable.
  save [name]     Saves memory to a file.
  restore [name]  Restores memory from a file (also: load).
  clear           Clears the screen.
  quit            Quits the program.

Assignment
  $name = expr    Evaluates expr and stores the result as $name.
  $name <= text   Stores text as $name without evaluating it.

Special Variables
  $_              Result of the last expression."""

LOST_HINT = '(Lost? Type "quit" or ^C to quit.)'
CLEAR_SCREEN = "\033[H\033[2J"

# --- Tab Completion ---
COMPLETION_WORDS = [
    # Commands
    "quit", "restore", "load", "list", "ls", "save", "help", "delete", "clear",
    # Common words
    "quarter", "cubic", "square", "in", "to", "per", "of", "root", "percent",
    # Constants
    "pi", "speed_of_light", "gravitational_constant", "avogadro_number",
    # Currency
    "dollars", "euros", "pounds", "yen", "USD", "EUR", "GBP", "JPY",
    # Length
    "miles", "feet", "inches", "yards", "meters", "kilometers", "centimeters",
    "millimeters", "furlongs", "light_year", "astronomical_unit",
    # Mass
    "grams", "kilograms", "milligrams", "ounces", "pounds", "stones", "tonnes",
    # Time
    "seconds", "minutes", "hours", "days", "weeks", "fortnights", "years",
    # Speed
    "mph", "kph", "knots",
    # Volume
    "liters", "milliliters", "gallons", "pints", "cups", "teaspoons", "tablespoons",
    # Temperature
    "kelvin", "degF", "degC",
    # Energy and power
    "joules", "calories", "kilocalories", "BTU", "watts", "kilowatts", "horsepower",
    # Data
    "bits", "bytes", "kilobytes", "megabytes", "gigabytes", "terabytes",
]


def complete(text: str, memory: Memory, slots: SlotStore) -> List[str]:
    """Completion candidates starting with text, ignoring case."""
    targets = COMPLETION_WORDS + memory.named_variables() + slots.slots()
    prefix = text.lower()
    matches = []
    for target in targets:
        if target.lower().startswith(prefix) and target not in matches:
            matches.append(target)
    return matches


def setup_readline(memory: Memory, slots: SlotStore, history_file: Path = HISTORY_FILE) -> bool:
    """Turns on history and tab completion when readline is available."""
    try:
        import readline
    except ImportError:
        return False

    try:
        readline.read_history_file(str(history_file))
    except OSError:
        pass
    readline.set_history_length(HISTORY_LENGTH)
    atexit.register(_write_history, readline, history_file)

    matches: List[str] = []

    def completer(text, state):
        if state == 0:
            matches[:] = complete(text, memory, slots)
        if state < len(matches):
            return matches[state] + " "
        return None

    # '$' has to stay part of the word so variables complete
    readline.set_completer_delims(readline.get_completer_delims().replace("$", ""))
    readline.set_completer(completer)
    readline.parse_and_bind("tab: complete")
    return True


def _write_history(readline, history_file: Path):
    try:
        readline.write_history_file(str(history_file))
    except OSError as e:
        logger.warning(f"Could not write history file {history_file}: {e}")


class Repl:
    """Reads commands, runs them against memory, prints the outcome.

    Each command is handled completely before the next line is read; any
    error is reported and the loop carries on.
    """

    prompt = "? "

    def __init__(
        self,
        memory: Memory,
        slots: SlotStore,
        evaluate: Callable[[str], Tuple[Optional[Any], Optional[EvaluationError]]],
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
    ):
        self.memory = memory
        self.slots = slots
        self.evaluate = evaluate
        self.out = out
        self.err = err
        self.handlers = {
            CommandKind.BLANK: lambda command: None,
            CommandKind.CLEAR_SCREEN: self._clear_screen,
            CommandKind.HELP: self._help,
            CommandKind.SAVE: self._save,
            CommandKind.RESTORE: self._restore,
            CommandKind.LIST: self._list,
            CommandKind.DELETE_ALL: self._delete_all,
            CommandKind.DELETE_VAR: self._delete_var,
            CommandKind.ASSIGN_RAW: self._assign_raw,
            CommandKind.ASSIGN_EVAL: self._evaluate,
            CommandKind.EVALUATE: self._evaluate,
        }

    def run(self, read_line: Optional[Callable[[str], str]] = None) -> int:
        """Loops until quit, end of input or ^C. Always returns 0."""
        read_line = read_line or input
        try:
            while True:
                try:
                    line = read_line(self.prompt)
                except EOFError:
                    self._print("")
                    return 0

                try:
                    if not self.handle(line):
                        return 0
                except Exception as e:
                    logger.error(f"Error processing input '{line}': {e}", exc_info=True)
                    self._report(f"Error processing input: {e}")
        except KeyboardInterrupt:
            self._print("")
            return 0

    def handle(self, line: str) -> bool:
        """Runs one line of input. Returns False when the user wants to quit."""
        command = classify(line)
        logger.debug(f"Input '{line}' classified as {command}")
        if command.kind is CommandKind.QUIT:
            return False
        self.handlers[command.kind](command)
        return True

    # --- Output ---

    def _print(self, text: str, end: str = "\n"):
        print(text, end=end, file=self.out)

    def _report(self, message: str):
        print(f"  {message}. {LOST_HINT}", file=self.err)

    # --- Handlers ---

    def _clear_screen(self, command: Command):
        self._print(CLEAR_SCREEN, end="")

    def _help(self, command: Command):
        self._print(USAGE)
        self._print("")

    def _save(self, command: Command):
        message, error = self.slots.save(self.memory, command.name)
        if error:
            self._report(f"Error saving contents of memory: {error}")
        else:
            self._print(f"  {message}")
        self._print("")

    def _restore(self, command: Command):
        message, error = self.slots.load(self.memory, command.name)
        if error:
            self._report(f"Error restoring memory from file: {error}")
        else:
            self._print(f"  {message}")
        self._print("")

    def _list(self, command: Command):
        self._print(self.memory.dump().rstrip("\n"))
        self._print("")

        saved = self.slots.slots()
        if not saved:
            self._print("  There are no saved memory files.")
        else:
            self._print(f"  Saved memory files in {self.slots.data_dir}:")
            for slot in saved:
                self._print(f"    {slot}")
        self._print("")

    def _delete_all(self, command: Command):
        self.memory.clear()
        self._print("  All variables deleted.")
        self._print("")

    def _delete_var(self, command: Command):
        error = self.memory.delete(command.name)
        if error:
            self._report(str(error))
        else:
            self._print(f"  Variable ${command.name} deleted.")
        self._print("")

    def _assign_raw(self, command: Command):
        self.memory.store(command.name, command.text)
        self._print(f"  ${command.name} = {command.text}")
        self._print("")

    def _evaluate(self, command: Command):
        expression, error = self.memory.substitute(command.text)
        if error:
            self._report(str(error))
            self._print("")
            return

        result, error = self.evaluate(expression)
        if error:
            self._report(str(error))
            self._print("")
            return

        self.memory.update_last(result)
        name = self.memory.store(command.name, result)
        self._print(f"  ${name} = {result}")
        self._print("")
