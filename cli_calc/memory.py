import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from cli_calc.config import MAX_SUBSTITUTION_PASSES
from cli_calc.errors import InfiniteRecursion, VariableNotFound

logger = logging.getLogger(__name__)

# --- Variable Names ---
# A variable reference is '$' followed by the longest run of name characters,
# so '$1a' refers to '1a', never to '1' followed by 'a'
VARIABLE_NAME_PATTERN = re.compile(r"^[0-9A-Za-z_]+$")
VARIABLE_TOKEN_PATTERN = re.compile(r"\$([0-9A-Za-z_]+)")
AUTO_NAME_PATTERN = re.compile(r"^[0-9]+$")

LAST_RESULT = "_"


class Memory:
    """Variables of one calculator session.

    Unnamed results get consecutive numeric names ("1", "2", ...) from a
    counter that is never rewound except by clear(). The special variable
    "_" always holds the last evaluated result.
    """

    def __init__(self, max_passes: int = MAX_SUBSTITUTION_PASSES):
        self.max_passes = max_passes
        self._bindings: Dict[str, Any] = {}
        self._next_auto_name = 1

    def __len__(self) -> int:
        return len(self._bindings)

    def __contains__(self, name: str) -> bool:
        return name in self._bindings

    def get(self, name: str, default: Any = None) -> Any:
        return self._bindings.get(name, default)

    @property
    def next_auto_name(self) -> int:
        return self._next_auto_name

    # --- Storage ---

    def store(self, name: Optional[str], value: Any) -> str:
        """Stores a value, picking the next numeric name when none is given.

        Returns the name the value ended up under.
        """
        if name is None:
            name = str(self._next_auto_name)
            self._next_auto_name += 1

        self._bindings[name] = value
        logger.debug(f"Stored ${name} = {value!r}")
        return name

    def update_last(self, value: Any):
        self._bindings[LAST_RESULT] = value

    def delete(self, name: str) -> Optional[VariableNotFound]:
        if name not in self._bindings:
            return VariableNotFound(name)
        del self._bindings[name]
        logger.debug(f"Deleted ${name}")
        return None

    def clear(self):
        """Forgets every variable and restarts automatic naming at 1."""
        self._bindings = {}
        self._next_auto_name = 1

    def named_variables(self) -> List[str]:
        """Variables the user named, as '$name' strings for completion.

        Anything made only of digits counts as an automatic name and is left
        out, including digit-only names the user picked.
        """
        return [
            f"${name}" for name in self._bindings if not AUTO_NAME_PATTERN.match(name)
        ]

    def dump(self) -> str:
        if not self._bindings:
            return "  Memory is empty."

        # Plain string ordering: "10" comes before "2"
        rows = [f"  ${name} = {value}\n" for name, value in sorted(self._bindings.items())]
        return "".join(rows)

    # --- Snapshots ---

    def snapshot(self) -> Tuple[Dict[str, Any], int]:
        return dict(self._bindings), self._next_auto_name

    def replace(self, bindings: Dict[str, Any], next_auto_name: int):
        """Swaps in a complete state, as produced by a restore."""
        self._bindings, self._next_auto_name = dict(bindings), next_auto_name

    # --- Variable Substitution ---

    def substitute(self, expression: str) -> Tuple[Optional[str], Optional[InfiniteRecursion]]:
        """Replaces every known '$name' in the expression with its value.

        Values may themselves mention other variables, so substitution repeats
        until a pass changes nothing. Unknown references such as '$480' are
        left alone for the engine to read as money. Returns the substituted
        text, or an InfiniteRecursion error when resolving would take more
        than max_passes substituting passes.
        """
        return self._substitute(expression, 0)

    def _substitute(
        self, expression: str, passes: int
    ) -> Tuple[Optional[str], Optional[InfiniteRecursion]]:
        if passes > self.max_passes:
            logger.warning(f"Gave up substituting after {self.max_passes} passes: '{expression}'")
            return None, InfiniteRecursion(self.max_passes)

        substituted = False

        def lookup(match):
            nonlocal substituted
            name = match.group(1)
            if name not in self._bindings:
                return match.group(0)
            substituted = True
            return str(self._bindings[name])

        result = VARIABLE_TOKEN_PATTERN.sub(lookup, expression)
        if not substituted:
            return result, None

        logger.debug(f"Substitution pass {passes + 1}: '{expression}' -> '{result}'")
        return self._substitute(result, passes + 1)
