"""
Flat-file JSON stores for books, votes and the vote epoch.

Every write takes an exclusive flock on "<file>.lock" and lands through a
temp file + os.replace, so readers never see a half-written document.
"""
import os
import json
import errno
import fcntl
import logging
import tempfile

logger = logging.getLogger("book_vote")

# --- File utilities: atomic writes & locks ---
class FileLock:
    def __init__(self, path):
        self.path = path
        self.f = None

    def __enter__(self):
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        self.f = open(self.path, "a+")
        while True:
            try:
                fcntl.flock(self.f.fileno(), fcntl.LOCK_EX)
                break
            except IOError as e:
                if e.errno != errno.EINTR:
                    raise
        return self.f

    def __exit__(self, exc_type, exc, tb):
        try:
            fcntl.flock(self.f.fileno(), fcntl.LOCK_UN)
        finally:
            self.f.close()

def atomic_write_json(path, obj):
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with tempfile.NamedTemporaryFile("w", delete=False, dir=os.path.dirname(path) or ".") as tf:
        json.dump(obj, tf, indent=2)
        tf.flush()
        os.fsync(tf.fileno())
        tmp = tf.name
    os.replace(tmp, path)


class JsonStore:
    """One JSON document on disk with a fallback value.

    ``kind`` is the expected top-level type; anything else found in the file
    counts as corruption, same as unparseable JSON.
    """

    kind = object
    label = "store"

    def __init__(self, path: str):
        self.path = path
        self.lock_path = path + ".lock"

    def empty(self):
        raise NotImplementedError

    def validate(self, data):
        """Raise ValueError if a well-typed document is still unusable."""

    def _read(self):
        # Caller decides whether the lock is held.
        if not os.path.exists(self.path):
            return self.empty()
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
            if not isinstance(data, self.kind):
                raise ValueError(f"expected {self.kind.__name__}, got {type(data).__name__}")
            self.validate(data)
            return data
        except Exception:
            logger.exception("Cannot load %s (%s); resetting to empty.", self.label, self.path)
            atomic_write_json(self.path, self.empty())
            return self.empty()

    def load(self):
        with FileLock(self.lock_path):
            return self._read()

    def save(self, obj):
        with FileLock(self.lock_path):
            atomic_write_json(self.path, obj)

    def ensure(self):
        """Seed the file with its empty value if it does not exist yet."""
        with FileLock(self.lock_path):
            if not os.path.exists(self.path):
                atomic_write_json(self.path, self.empty())


class BookStore(JsonStore):
    kind = list
    label = "books"

    def empty(self):
        return []

    def validate(self, data):
        for i, book in enumerate(data):
            if not isinstance(book, dict):
                raise ValueError(f"book #{i} is {type(book).__name__}, not an object")


class VoteStore(JsonStore):
    kind = dict
    label = "votes"

    def empty(self):
        return {}

    def add(self, voter_id: str, allocation: dict):
        with FileLock(self.lock_path):
            votes = self._read()
            votes[voter_id] = allocation
            atomic_write_json(self.path, votes)
        return len(votes)

    def clear(self):
        self.save({})


class EpochStore(JsonStore):
    """Persisted vote epoch. Starts at 1, only ever goes up."""

    kind = dict
    label = "vote state"

    def empty(self):
        return {"epoch": 1}

    def current(self) -> int:
        try:
            return int(self.load().get("epoch", 1))
        except (TypeError, ValueError):
            logger.exception("Bad epoch value in %s; using 1.", self.path)
            return 1

    def bump(self) -> int:
        with FileLock(self.lock_path):
            state = self._read()
            try:
                epoch = int(state.get("epoch", 1)) + 1
            except (TypeError, ValueError):
                epoch = 2
            state["epoch"] = epoch
            atomic_write_json(self.path, state)
        return epoch
