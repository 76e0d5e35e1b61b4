"""Line-oriented parser for KEY=VALUE configuration files.

Every line survives a parse/render round trip byte for byte unless it
is explicitly changed. Comments, blank lines and anything that is not
an assignment are carried through untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional


@dataclass
class EnvLine:
    """One physical line of an env file.

    Attributes:
        raw: The line exactly as it appears on disk (no newline).
        key: Assignment key, or None for comments/blank/other lines.
        value: Trimmed assignment value, or None.
    """

    raw: str
    key: Optional[str] = None
    value: Optional[str] = None

    @classmethod
    def parse(cls, raw: str) -> "EnvLine":
        stripped = raw.strip()
        if not stripped or stripped.startswith("#") or "=" not in raw:
            return cls(raw=raw)
        key, _, value = raw.partition("=")
        key = key.strip()
        if not key:
            return cls(raw=raw)
        return cls(raw=raw, key=key, value=value.strip())

    @classmethod
    def assignment(cls, key: str, value: str) -> "EnvLine":
        return cls(raw=f"{key}={value}", key=key, value=value)


class EnvFile:
    """An ordered, comment-preserving view of an env file."""

    def __init__(self, lines: Optional[list[EnvLine]] = None, trailing_newline: bool = True):
        self.lines: list[EnvLine] = lines or []
        self.trailing_newline = trailing_newline

    @classmethod
    def parse(cls, text: str) -> "EnvFile":
        """Parse file content into lines.

        Args:
            text: Full file content.

        Returns:
            EnvFile: Parsed representation.
        """
        if not text:
            return cls([], trailing_newline=True)
        trailing = text.endswith("\n")
        body = text[:-1] if trailing else text
        return cls([EnvLine.parse(raw) for raw in body.split("\n")], trailing_newline=trailing)

    def render(self) -> str:
        text = "\n".join(line.raw for line in self.lines)
        if self.lines and self.trailing_newline:
            text += "\n"
        return text

    def __iter__(self) -> Iterator[EnvLine]:
        return iter(self.lines)

    def _index(self, key: str) -> Optional[int]:
        for i, line in enumerate(self.lines):
            if line.key == key:
                return i
        return None

    def keys(self) -> list[str]:
        seen: list[str] = []
        for line in self.lines:
            if line.key is not None and line.key not in seen:
                seen.append(line.key)
        return seen

    def has(self, key: str) -> bool:
        return self._index(key) is not None

    def get(self, key: str) -> Optional[str]:
        """Return the value of the first assignment to ``key``, or None."""
        idx = self._index(key)
        return None if idx is None else self.lines[idx].value

    def as_dict(self) -> dict[str, str]:
        values: dict[str, str] = {}
        for line in self.lines:
            if line.key is not None and line.key not in values:
                values[line.key] = line.value or ""
        return values

    def set(self, key: str, value: str) -> None:
        """Replace the first assignment to ``key`` or append a new one.

        Only the matching line changes; every other line keeps its
        exact text and position.
        """
        idx = self._index(key)
        if idx is None:
            self.lines.append(EnvLine.assignment(key, value))
        else:
            self.lines[idx] = EnvLine.assignment(key, value)

    def insert_after(self, anchor: str, key: str, value: str) -> int:
        """Insert ``key=value`` right after ``anchor``'s line.

        Falls back to appending when the anchor is absent.

        Returns:
            int: Zero-based line index of the inserted line.
        """
        idx = self._index(anchor)
        line = EnvLine.assignment(key, value)
        if idx is None:
            self.lines.append(line)
            return len(self.lines) - 1
        self.lines.insert(idx + 1, line)
        return idx + 1
