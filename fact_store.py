import json
import logging
import os
import re
import tempfile
import threading
from typing import Dict, Final, List, Optional, Tuple

from similarity import is_similar

LOGGER: Final[logging.Logger] = logging.getLogger(__name__)

DEFAULT_STORE_ID: Final[str] = "default"

# Facts below LISTING_MIN_ID are hidden from !list and the extraction prompt.
# Facts below RESERVED_ID_LIMIT can't be forgotten, evicted or rewritten.
# The two boundaries differ on purpose; see DESIGN.md before unifying them.
LISTING_MIN_ID: Final[int] = 2
RESERVED_ID_LIMIT: Final[int] = 5

_ID_PREFIX_RE: Final = re.compile(r"^\s*(\d+)\s*:\s*(.*)$", re.DOTALL)


def seed_fact(server_name: str) -> str:
    return f"You are in the server called {server_name}."


class FactStore:
    """Per-guild JSON fact files, plus a shared "default" file overlaid on every guild."""

    def __init__(self, data_dir: Optional[str] = None):
        if data_dir is None:
            data_dir = os.environ.get("FACT_DATA_DIR", ".")
        self.data_dir = data_dir
        os.makedirs(self.data_dir, exist_ok=True)
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def path_for(self, guild_id) -> str:
        return os.path.join(self.data_dir, f"{guild_id}.json")

    def lock_for(self, guild_id) -> threading.RLock:
        """The lock serializing read-modify-write cycles for one guild."""
        key = str(guild_id)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    def exists(self, guild_id) -> bool:
        return os.path.exists(self.path_for(guild_id))

    def read(self, guild_id) -> Dict[int, str]:
        """Return the guild's facts in file order, or {} if it has no file yet."""
        try:
            with open(self.path_for(guild_id), "r", encoding="utf-8") as f:
                raw = f.read()
        except FileNotFoundError:
            return {}
        if not raw.strip():
            return {}
        data = json.loads(raw)
        return {int(key): str(value) for key, value in data.items()}

    def write(self, guild_id, facts: Dict[int, str]) -> None:
        """Replace the guild's file atomically with `facts`."""
        payload = json.dumps({str(k): v for k, v in facts.items()}, indent=2, ensure_ascii=False)
        fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=f".{guild_id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self.path_for(guild_id))
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def read_merged(self, guild_id) -> Dict[int, str]:
        """Default facts overlaid by the guild's own facts (guild wins on id collision)."""
        merged = self.read(DEFAULT_STORE_ID)
        merged.update(self.read(guild_id))
        return merged

    def values_as_string(self, guild_id) -> str:
        return ",".join(self.read_merged(guild_id).values())

    def listable(self, guild_id) -> List[Tuple[int, str]]:
        return [(k, v) for k, v in self.read(guild_id).items() if k >= LISTING_MIN_ID]

    def ensure_seeded(self, guild_id, server_name: str) -> bool:
        """Create the guild file with its seed fact if it doesn't exist. Returns True if created."""
        with self.lock_for(guild_id):
            if self.exists(guild_id):
                return False
            self.write(guild_id, {1: seed_fact(server_name)})
            LOGGER.info("Created fact store for guild %s (%s)", guild_id, server_name)
            return True

    def add(self, guild_id, text: str) -> int:
        """Append a fact and return its id."""
        with self.lock_for(guild_id):
            facts = self.read(guild_id)
            new_id = next_id(facts)
            facts[new_id] = text
            self.write(guild_id, facts)
        LOGGER.info("Guild %s remembered #%d: %s", guild_id, new_id, text)
        return new_id

    def remove(self, guild_id, fact_id) -> str:
        """
        Forget a fact. Missing, malformed and reserved ids all leave the file
        untouched and get the same "not found" answer.
        """
        not_found = f"No item with ID {fact_id} found."
        try:
            key = int(str(fact_id).strip())
        except ValueError:
            return not_found

        with self.lock_for(guild_id):
            facts = self.read(guild_id)
            if key not in facts or key < RESERVED_ID_LIMIT:
                return not_found
            removed = facts.pop(key)
            self.write(guild_id, facts)

        LOGGER.info("Guild %s forgot #%d", guild_id, key)
        return f"Item with ID {key} has been forgotten!\n`{removed}`"

    def find_conflict(self, guild_id, text: str) -> Optional[int]:
        """First non-reserved fact id similar to `text`, in file order."""
        with self.lock_for(guild_id):
            return _first_similar(self.read(guild_id), text)

    def update_by_similarity(self, guild_id, old_text: str, new_text: str) -> bool:
        """
        Overwrite the fact that `old_text` refers to with `new_text`.

        `old_text` may name the fact directly as "<id>: ..."; otherwise the
        first similar non-reserved fact is rewritten. With no match the new
        text is added as a fresh fact and False is returned.
        """
        with self.lock_for(guild_id):
            facts = self.read(guild_id)

            target = None
            match = _ID_PREFIX_RE.match(old_text)
            if match and int(match.group(1)) in facts:
                target = int(match.group(1))
            if target is None:
                target = _first_similar(facts, old_text)

            if target is None:
                new_id = self.add(guild_id, new_text)
                LOGGER.info("No fact matched %r; added #%d instead", old_text, new_id)
                return False

            facts[target] = new_text
            self.write(guild_id, facts)

        LOGGER.info("Guild %s updated #%d: %s", guild_id, target, new_text)
        return True

    def replace_conflicting(self, guild_id, text: str) -> Tuple[Optional[int], int]:
        """Evict the first fact conflicting with `text`, then add `text`. Returns (evicted_id, new_id)."""
        with self.lock_for(guild_id):
            evicted = self.find_conflict(guild_id, text)
            facts = self.read(guild_id)
            if evicted is not None:
                LOGGER.info("Guild %s evicting #%d (%s) in favour of: %s",
                            guild_id, evicted, facts[evicted], text)
                del facts[evicted]
            new_id = next_id(facts)
            facts[new_id] = text
            self.write(guild_id, facts)
        return evicted, new_id


def next_id(facts: Dict[int, str]) -> int:
    return max(facts) + 1 if facts else 1


def _first_similar(facts: Dict[int, str], text: str) -> Optional[int]:
    for key, value in facts.items():
        if key < RESERVED_ID_LIMIT:
            continue
        if is_similar(text, value):
            return key
    return None
