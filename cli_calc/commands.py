import re
from enum import Enum
from typing import NamedTuple, Optional


class CommandKind(Enum):
    BLANK = "blank"
    CLEAR_SCREEN = "clear_screen"
    QUIT = "quit"
    HELP = "help"
    SAVE = "save"
    RESTORE = "restore"
    LIST = "list"
    DELETE_ALL = "delete_all"
    DELETE_VAR = "delete_var"
    ASSIGN_RAW = "assign_raw"
    ASSIGN_EVAL = "assign_eval"
    EVALUATE = "evaluate"


class Command(NamedTuple):
    kind: CommandKind
    name: Optional[str] = None
    text: Optional[str] = None


# --- Command Patterns ---
# Tried in order, first match wins. Assignments come after every keyword
# command, and anything left over is an expression.
COMMAND_PATTERNS = [
    (re.compile(r"^$"), CommandKind.BLANK),
    (re.compile(r"^(?:clear|cs)$"), CommandKind.CLEAR_SCREEN),
    (re.compile(r"^(?:q|quit|exit)$"), CommandKind.QUIT),
    (re.compile(r"^(?:help|wtf)$"), CommandKind.HELP),
    (re.compile(r"^save(?: +(?P<name>.+))?$"), CommandKind.SAVE),
    (re.compile(r"^(?:restore|load)(?: +(?P<name>.+))?$"), CommandKind.RESTORE),
    (re.compile(r"^(?:list|ls)$"), CommandKind.LIST),
    (re.compile(r"^delete +all$"), CommandKind.DELETE_ALL),
    (re.compile(r"^delete +\$?(?P<name>.+)$"), CommandKind.DELETE_VAR),
    (re.compile(r"^\$(?P<name>[0-9A-Za-z_]+) *<= *(?P<text>.+)$"), CommandKind.ASSIGN_RAW),
    (re.compile(r"^\$(?P<name>[0-9A-Za-z_]+) *= *(?P<text>.+)$"), CommandKind.ASSIGN_EVAL),
]


def normalize(line: str) -> str:
    return line.strip().replace("\t", " ")


def classify(line: str) -> Command:
    """Works out what a line of input asks for."""
    line = normalize(line)

    for pattern, kind in COMMAND_PATTERNS:
        match = pattern.match(line)
        if match:
            groups = match.groupdict()
            return Command(kind, groups.get("name"), groups.get("text"))

    return Command(CommandKind.EVALUATE, text=line)
