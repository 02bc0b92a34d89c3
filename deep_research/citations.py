"""Global citation registry.

Maps each source URI to a 1-based index assigned the first time the URI
is seen. Indices never change once assigned and stay dense (1..N in
first-seen order). This is the only state shared across chapters.
"""

import threading
from typing import Dict, Iterable, List, Optional

from .models import Source


class CitationRegistry:
    def __init__(self):
        self._index: Dict[str, int] = {}
        self._sources: List[Source] = []
        # registration is sequential today; the lock keeps first-seen order
        # intact if chapters are ever researched in parallel
        self._lock = threading.Lock()

    def register(self, source: Source) -> int:
        """Return the index for ``source.uri``, assigning the next one if new."""
        with self._lock:
            existing = self._index.get(source.uri)
            if existing is not None:
                return existing
            self._sources.append(source)
            index = len(self._sources)
            self._index[source.uri] = index
            return index

    def register_all(self, sources: Iterable[Source]) -> List[int]:
        return [self.register(source) for source in sources]

    def index_of(self, uri: str) -> Optional[int]:
        return self._index.get(uri)

    def sources(self) -> List[Source]:
        """Registered sources in index order (position i holds index i + 1)."""
        with self._lock:
            return list(self._sources)

    def __len__(self) -> int:
        return len(self._sources)

    def __contains__(self, uri: object) -> bool:
        return uri in self._index
