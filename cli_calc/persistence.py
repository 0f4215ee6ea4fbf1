import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from cli_calc.config import DATA_DIR, DEFAULT_SLOT
from cli_calc.errors import PersistenceError
from cli_calc.memory import VARIABLE_NAME_PATTERN, Memory

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


# --- Snapshot Encoding ---


def serialize(bindings: Dict[str, Any], next_auto_name: int) -> bytes:
    """Encodes a memory snapshot as a JSON document."""
    document = {
        "version": FORMAT_VERSION,
        "next_auto_name": next_auto_name,
        "bindings": bindings,
    }
    return json.dumps(document, indent=2).encode("utf-8")


def deserialize(data: bytes) -> Tuple[Dict[str, Any], int]:
    """Decodes a snapshot written by serialize().

    Raises PersistenceError if the data is not a valid snapshot; nothing is
    returned unless the whole document checks out.
    """
    try:
        document = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise PersistenceError(f"File is not a saved memory file ({e})") from e

    if not isinstance(document, dict):
        raise PersistenceError("File is not a saved memory file")

    version = document.get("version")
    if version != FORMAT_VERSION:
        raise PersistenceError(f"Unsupported memory file version: {version!r}")

    bindings = document.get("bindings")
    if not isinstance(bindings, dict):
        raise PersistenceError("Memory file has no variables section")
    for name in bindings:
        if not VARIABLE_NAME_PATTERN.match(name):
            raise PersistenceError(f"Invalid variable name in memory file: '{name}'")

    next_auto_name = document.get("next_auto_name")
    # bool is an int subclass
    if isinstance(next_auto_name, bool) or not isinstance(next_auto_name, int) or next_auto_name < 1:
        raise PersistenceError(f"Invalid variable counter in memory file: {next_auto_name!r}")

    return bindings, next_auto_name


# --- Save Slots ---


class SlotStore:
    """Saved copies of memory, one file per named slot in the data directory."""

    def __init__(self, data_dir: Union[str, Path] = DATA_DIR):
        self.data_dir = Path(data_dir)

    def path_for(self, slot: str) -> Path:
        if not slot or slot.startswith(".") or "/" in slot or "\\" in slot:
            raise PersistenceError(f"Invalid memory file name '{slot}'")
        return self.data_dir / slot

    def save(self, memory: Memory, slot: Optional[str] = None) -> Tuple[Optional[str], Optional[PersistenceError]]:
        """Writes the whole memory to a slot ("default" when unnamed)."""
        custom = slot is not None
        slot = slot if custom else DEFAULT_SLOT

        try:
            path = self.path_for(slot)
            self.data_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(serialize(*memory.snapshot()))
        except PersistenceError as e:
            return None, e
        except OSError as e:
            logger.error(f"Failed to save memory to {self.data_dir / slot}: {e}")
            return None, PersistenceError(e.strerror or str(e))

        logger.info(f"Memory saved to {path}")
        if custom:
            return f"Saved contents of memory to '{slot}'.", None
        return "Saved contents of memory.", None

    def load(self, memory: Memory, slot: Optional[str] = None) -> Tuple[Optional[str], Optional[PersistenceError]]:
        """Replaces the whole memory with a saved slot.

        The live memory is only touched once the file has been read and
        decoded completely.
        """
        custom = slot is not None
        slot = slot if custom else DEFAULT_SLOT

        try:
            path = self.path_for(slot)
            bindings, next_auto_name = deserialize(path.read_bytes())
        except PersistenceError as e:
            logger.warning(f"Could not restore memory from '{slot}': {e}")
            return None, e
        except FileNotFoundError:
            return None, PersistenceError(f"No saved memory file named '{slot}'")
        except OSError as e:
            logger.error(f"Failed to read memory file '{slot}': {e}")
            return None, PersistenceError(e.strerror or str(e))

        memory.replace(bindings, next_auto_name)
        logger.info(f"Memory restored from {path}")
        if custom:
            return f"Restored contents of memory from '{slot}'.", None
        return "Restored contents of memory.", None

    def slots(self) -> List[str]:
        """Names of saved slots, empty if nothing was ever saved."""
        try:
            return sorted(
                entry.name for entry in self.data_dir.iterdir()
                if entry.is_file() and not entry.name.startswith(".")
            )
        except OSError:
            return []
