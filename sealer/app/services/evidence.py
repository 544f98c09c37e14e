"""
Evidence hashing.

Turns uploaded evidence files into immutable ``EvidenceRecord`` values.

- Each file is digested exactly once per identity; repeated seals of the
  same upload reuse the cached digest. The cache holds at most ``max_entries``
  identities and evicts the least recently used one.
- Files are hashed concurrently (worker threads driven by an anyio task
  group). All digests are joined before any record is returned, so a
  sealing request is never assembled with a missing digest.
- Placeholder entries (a name with no content behind it) are not hashed.
  They are reported back as skipped so the caller may still list them.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Hashable, List, Optional, Sequence, Tuple
from uuid import uuid4

import anyio
import anyio.to_thread

from sealer.app.errors import HashInputFailure
from sealer.app.schemas.sealing import EvidenceRecord
from sealer.app.utils.hashing import digest, digest_file

logger = logging.getLogger(__name__)


DEFAULT_CACHE_ENTRIES = 1024


@dataclass(frozen=True)
class EvidenceFile:
    """
    An uploaded evidence file, either held in memory or on disk.

    A file with neither ``content`` nor ``path`` is a placeholder.
    Zero-length ``content`` is a real (empty) file and is hashed.
    """

    name: str
    content: Optional[bytes] = None
    path: Optional[Path] = None
    file_id: str = field(default_factory=lambda: uuid4().hex)

    @property
    def is_placeholder(self) -> bool:
        return self.content is None and self.path is None


class EvidenceHasher:
    """SHA-512 hasher with a per-identity digest cache."""

    def __init__(self, *, max_entries: int = DEFAULT_CACHE_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._cache: OrderedDict[Hashable, str] = OrderedDict()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @staticmethod
    def _identity(file: EvidenceFile) -> Hashable:
        if file.path is not None and file.content is None:
            try:
                resolved = Path(file.path).resolve()
                stat = resolved.stat()
            except OSError as exc:
                raise HashInputFailure(file.name, str(exc)) from exc
            return ("path", str(resolved), stat.st_size, stat.st_mtime_ns)
        return ("upload", file.file_id)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def hash_file(self, file: EvidenceFile) -> str:
        """Digest a single evidence file, consulting the cache first."""
        if file.is_placeholder:
            raise HashInputFailure(file.name, "placeholder has no content")

        key = self._identity(file)

        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
        if cached is not None:
            return cached

        try:
            if file.content is not None:
                value = digest(file.content)
            else:
                value = digest_file(file.path)
        except OSError as exc:
            raise HashInputFailure(file.name, str(exc)) from exc

        with self._lock:
            self._cache[key] = value
            self._cache.move_to_end(key)
            while len(self._cache) > self._max_entries:
                self._cache.popitem(last=False)

        logger.debug("evidence_hashed name=%s", file.name)
        return value

    def cached_count(self) -> int:
        with self._lock:
            return len(self._cache)

    async def hash_all(
        self,
        files: Sequence[EvidenceFile],
    ) -> Tuple[List[EvidenceRecord], List[str]]:
        """
        Hash every non-placeholder file concurrently.

        Returns:
            ``(records, skipped)`` where ``records`` preserves input order
            and ``skipped`` lists the names of placeholder entries.

        Raises:
            HashInputFailure: if any file could not be read. The first
            failure (in completion order) is raised after all workers
            have finished.
        """
        hashable = [f for f in files if not f.is_placeholder]
        skipped = [f.name for f in files if f.is_placeholder]

        digests: List[Optional[str]] = [None] * len(hashable)
        failures: List[HashInputFailure] = []

        async def _run(index: int, file: EvidenceFile) -> None:
            try:
                digests[index] = await anyio.to_thread.run_sync(
                    self.hash_file, file
                )
            except HashInputFailure as exc:
                failures.append(exc)

        async with anyio.create_task_group() as tg:
            for index, file in enumerate(hashable):
                tg.start_soon(_run, index, file)

        if failures:
            raise failures[0]

        if skipped:
            logger.info(
                "evidence_placeholders_skipped count=%d names=%s",
                len(skipped),
                skipped,
            )

        records = [
            EvidenceRecord(name=file.name, digest=value)
            for file, value in zip(hashable, digests)
        ]
        return records, skipped
