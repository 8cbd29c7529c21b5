"""Assigns display names to players who join without choosing one."""

from __future__ import annotations

from collections import deque
from pathlib import Path
import random
from threading import Lock

# Used when no alias file is configured or it cannot be read.
_FALLBACK_NAMES = [
    "Ada Lovelace",
    "Alan Turing",
    "Grace Hopper",
    "Marie Curie",
    "Niels Bohr",
    "Rosalind Franklin",
    "Emmy Noether",
    "Srinivasa Ramanujan",
    "Katherine Johnson",
    "Carl Gauss",
    "Lise Meitner",
    "Isaac Newton",
    "Hypatia",
    "Euclid",
    "Dorothy Hodgkin",
    "Nikola Tesla",
    "Barbara McClintock",
    "Chien-Shiung Wu",
    "Leonhard Euler",
    "Sophie Germain",
    "Richard Feynman",
    "Mary Anning",
    "Galileo Galilei",
    "Jane Goodall",
]


class NameAssigner:
    """Provides randomized aliases that do not repeat within one cycle."""

    def __init__(self, names: list[str]):
        cleaned = [name.strip() for name in names if name.strip()]
        if not cleaned:
            raise ValueError("Name list cannot be empty.")
        self._names = cleaned
        self._pool: deque[str] = deque()
        self._lock = Lock()
        self._rng = random.Random()
        self._refill_pool()

    @classmethod
    def from_file(cls, path: Path | None) -> "NameAssigner":
        names = list(_FALLBACK_NAMES)
        if path is not None and path.exists():
            try:
                names = path.read_text(encoding="utf-8").splitlines()
            except OSError:
                names = list(_FALLBACK_NAMES)
        return cls(names)

    def next_name(self, taken: set[str] | frozenset[str] = frozenset()) -> str:
        """Return the next alias, skipping names in ``taken``.

        Once every alias of a cycle is taken, a numeric suffix keeps the
        result unique.
        """
        with self._lock:
            for _ in range(len(self._names)):
                if not self._pool:
                    self._refill_pool()
                candidate = self._pool.popleft()
                if candidate not in taken:
                    return candidate
            base = self._names[0]
            suffix = 2
            while f"{base} {suffix}" in taken:
                suffix += 1
            return f"{base} {suffix}"

    def reset_cycle(self) -> None:
        """Clear the remaining pool and reshuffle all names for a fresh cycle."""
        with self._lock:
            self._pool.clear()
            self._refill_pool()

    def _refill_pool(self) -> None:
        shuffled = list(self._names)
        self._rng.shuffle(shuffled)
        self._pool.extend(shuffled)
