"""
Process-local set of calls whose analysis is in flight.
"""

from __future__ import annotations

from typing import Callable, Iterator

from callaxis.analysis.repository import AnalysisRepository, RecordingRepository
from callaxis.shared.logging import get_logger

logger = get_logger(__name__)

ChangeListener = Callable[[frozenset[str]], None]


class InFlightSet:
    """Call ids currently being analyzed.

    Listeners receive the full membership after every change.
    """

    def __init__(self) -> None:
        self._ids: set[str] = set()
        self._listeners: list[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def add(self, call_id: str) -> None:
        if call_id not in self._ids:
            self._ids.add(call_id)
            self._notify()

    def discard(self, call_id: str) -> None:
        if call_id in self._ids:
            self._ids.discard(call_id)
            self._notify()

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._ids)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._ids))

    async def rebuild(self, analyses: AnalysisRepository, recordings: RecordingRepository) -> int:
        """Repopulate from non-terminal analyses after a restart.

        An analysis counts as in flight while neither it nor its recording
        has reached a terminal status.

        Returns:
            Number of call ids now in the set.
        """
        unfinished = await analyses.list_unfinished()
        recording_status = {
            r.id: r.status for r in await recordings.list_by_ids({a.recording_id for a in unfinished})
        }
        ids = {
            a.call_id
            for a in unfinished
            if not (recording_status.get(a.recording_id) and recording_status[a.recording_id].is_terminal)
        }
        self._ids = ids
        self._notify()
        logger.info("In-flight set rebuilt", extra={"in_flight": len(ids)})
        return len(ids)

    def _notify(self) -> None:
        members = self.snapshot()
        for listener in self._listeners:
            listener(members)
