"""Background corpus indexing with coarse-grained cancellation."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Dict, Optional

from vaultfinder.index.indexer import Indexer, ProgressCallback
from vaultfinder.ingestion.corpus import CorpusSource
from vaultfinder.models import IndexStats

LOGGER = logging.getLogger(__name__)


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class IndexJob:
    """Runs :meth:`Indexer.index_corpus` on a daemon thread.

    Cancellation is checked between documents, so :meth:`cancel` takes effect
    once the document being processed is finished.
    """

    def __init__(
        self,
        indexer: Indexer,
        corpus: CorpusSource,
        *,
        force: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.indexer = indexer
        self.corpus = corpus
        self.force = force
        self.status = JobStatus.PENDING
        self.result: Optional[IndexStats] = None
        self.error: Optional[BaseException] = None
        self._on_progress = on_progress
        self._progress = (0, 0, "")
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._run, name="vaultfinder-index", daemon=True)

    @property
    def is_running(self) -> bool:
        return self.status in (JobStatus.PENDING, JobStatus.RUNNING) and not self._done.is_set()

    @property
    def progress(self) -> tuple[int, int, str]:
        with self._lock:
            return self._progress

    def start(self) -> "IndexJob":
        self.status = JobStatus.RUNNING
        self._thread.start()
        return self

    def cancel(self) -> None:
        self._cancel.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the job finishes; False if ``timeout`` elapsed first."""
        return self._done.wait(timeout)

    def _report(self, current: int, total: int, document_id: str) -> None:
        with self._lock:
            self._progress = (current, total, document_id)
        if self._on_progress is not None:
            self._on_progress(current, total, document_id)

    def _run(self) -> None:
        try:
            self.result = self.indexer.index_corpus(
                self.corpus,
                force=self.force,
                on_progress=self._report,
                cancel_event=self._cancel,
            )
            self.status = JobStatus.CANCELLED if self.result.cancelled else JobStatus.COMPLETED
        except Exception as exc:
            LOGGER.exception("Background indexing failed")
            self.error = exc
            self.status = JobStatus.FAILED
        finally:
            self._done.set()

    def snapshot(self) -> Dict[str, Any]:
        current, total, document_id = self.progress
        return {
            "status": self.status.value,
            "current": current,
            "total": total,
            "document_id": document_id or None,
            "result": self.result.to_dict() if self.result else None,
            "error": str(self.error) if self.error else None,
        }
