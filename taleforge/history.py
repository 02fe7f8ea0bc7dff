"""Client-side sliding window over recent submissions.

Only the last `size` submissions are held; older ones are dropped as new ones
arrive. The window keeps a cursor for paging through what it holds.
"""

from __future__ import annotations

from collections import deque
from typing import Iterable

from taleforge.models import Submission


class SubmissionWindow:
    def __init__(self, size: int = 4) -> None:
        if size < 1:
            raise ValueError("window size must be at least 1")
        self._items: deque[Submission] = deque(maxlen=size)
        self._index = -1

    @property
    def size(self) -> int:
        return self._items.maxlen or 0

    @property
    def items(self) -> list[Submission]:
        return list(self._items)

    @property
    def index(self) -> int:
        """Cursor position, or -1 when the window is empty."""
        return self._index

    @property
    def current(self) -> Submission | None:
        if self._index < 0:
            return None
        return self._items[self._index]

    @property
    def next_sequence(self) -> int:
        return self._items[-1].sequence + 1 if self._items else 1

    def __len__(self) -> int:
        return len(self._items)

    def add(self, action: str, narrative: str) -> Submission:
        """Append a new exchange and move the cursor to it."""
        submission = Submission(sequence=self.next_sequence, action=action, narrative=narrative)
        self._items.append(submission)
        self.go_to_latest()
        return submission

    def extend(self, submissions: Iterable[Submission]) -> None:
        """Load history, oldest first by sequence. Only the newest `size` are kept."""
        for submission in sorted(submissions, key=lambda s: s.sequence):
            self._items.append(submission)
        self.go_to_latest()

    def previous(self) -> Submission | None:
        if self._index > 0:
            self._index -= 1
        return self.current

    def next(self) -> Submission | None:
        if 0 <= self._index < len(self._items) - 1:
            self._index += 1
        return self.current

    def go_to_latest(self) -> Submission | None:
        self._index = len(self._items) - 1
        return self.current

    def clear(self) -> None:
        self._items.clear()
        self._index = -1
