"""In-memory ledger of the latest answer per question."""
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass


@dataclass(frozen=True)
class AnswerEntry:
    """Latest recorded answer for one question."""

    question_id: str
    answer: str | None
    time_spent_ms: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "questionId": self.question_id,
            "answer": self.answer,
            "timeSpentMs": self.time_spent_ms,
        }


class AnswerLedger:
    """
    Mapping of question id to its latest answer.

    Upserts replace the entry in place, so a question keeps the position of
    its first answer and the values of its last one.
    """

    def __init__(self, entries: Iterable[AnswerEntry] = ()):
        self._entries: dict[str, AnswerEntry] = {}
        for entry in entries:
            self._entries[entry.question_id] = entry

    def upsert(
        self, question_id: str, answer: str | None, time_spent_ms: int = 0
    ) -> AnswerEntry:
        """Record the answer for a question, replacing any previous one."""
        entry = AnswerEntry(
            question_id=str(question_id),
            answer=answer,
            time_spent_ms=max(0, int(time_spent_ms or 0)),
        )
        self._entries[entry.question_id] = entry
        return entry

    def get(self, question_id: str) -> AnswerEntry | None:
        return self._entries.get(question_id)

    def to_ordered_list(self) -> list[AnswerEntry]:
        """Entries in first-answered order, detached from later upserts."""
        return list(self._entries.values())

    def correct_count(self, scoring_fn: Callable[[AnswerEntry], bool]) -> int:
        """Count entries the caller-supplied scoring function accepts."""
        return sum(1 for entry in self._entries.values() if scoring_fn(entry))

    def copy(self) -> "AnswerLedger":
        return AnswerLedger(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._entries

    def __iter__(self) -> Iterator[AnswerEntry]:
        return iter(self.to_ordered_list())
