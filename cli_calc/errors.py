"""Error kinds reported to the user.

Memory, persistence and the engine hand these back as the error half of a
``(result, error)`` pair; the REPL prints them and carries on.
"""


class CalcError(Exception):
    """Base class for every error the calculator reports."""


class EvaluationError(CalcError):
    """The engine could not make sense of an expression."""


class VariableNotFound(CalcError):
    def __init__(self, name: str):
        super().__init__(f"Variable ${name} does not exist")
        self.name = name


class InfiniteRecursion(CalcError):
    def __init__(self, passes: int):
        super().__init__(
            "Possible infinite recursion. Check your variables for a circular reference"
        )
        self.passes = passes


class PersistenceError(CalcError):
    """Saving or restoring memory failed."""
