"""In-process cache of the banner assets and their SRI hashes.

The cache owns one immutable ``AssetSnapshot`` holding the CSS entry, the
JS entry and the version stamp they were loaded under. ``reload()`` builds
a complete new snapshot off to the side and publishes it with a single
reference assignment, so readers see either the old pair or the new pair,
never a mix. A failed reload leaves the published snapshot untouched.

Readers never lock. Publishing is serialised so version stamps stay
strictly increasing when two reloads race.

A reload run on a worker thread can be handed a ``ReloadTicket``. Once the
caller abandons the ticket (for example after a timeout) that reload can no
longer publish, so a caller that reported failure never sees the cache
change behind its back.
"""
from __future__ import annotations

import base64
import hashlib
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from threading import Lock
from typing import Callable, Mapping, Protocol

logger = logging.getLogger(__name__)

SRI_ALGORITHM = 'sha384'


class AssetKind(str, Enum):
    CSS = 'css'
    JS = 'js'


class AssetLoadError(Exception):
    """Raised when an asset body cannot be read."""

    def __init__(self, kind: AssetKind | None, reason: str):
        self.kind = kind
        self.reason = reason
        target = f'{kind.value} asset' if kind is not None else 'banner assets'
        super().__init__(f'Failed to load {target}: {reason}')


@dataclass(frozen=True)
class AssetCacheEntry:
    """One cached asset body and its integrity hash."""
    content: bytes
    integrity: str
    algorithm: str = SRI_ALGORITHM


@dataclass(frozen=True)
class AssetSnapshot:
    """The CSS/JS pair published together under one version."""
    css: AssetCacheEntry
    js: AssetCacheEntry
    version: int

    def entry(self, kind: AssetKind) -> AssetCacheEntry:
        return self.css if kind is AssetKind.CSS else self.js


class ReloadTicket:
    """Links one reload to the caller waiting on it.

    Both fields are only touched under the cache's write lock.
    """

    def __init__(self) -> None:
        self.abandoned = False
        self.published: AssetSnapshot | None = None


class AssetSource(Protocol):
    """Somewhere an asset body can be read from."""

    def read(self) -> bytes: ...


class FileAssetSource:
    """Reads an asset from the local filesystem."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def read(self) -> bytes:
        return self.path.read_bytes()

    def __repr__(self) -> str:
        return f'FileAssetSource({str(self.path)!r})'


def compute_integrity(content: bytes, algorithm: str = SRI_ALGORITHM) -> str:
    """Return the Subresource-Integrity string for ``content``."""
    digest = hashlib.new(algorithm, content).digest()
    return f'{algorithm}-{base64.b64encode(digest).decode("ascii")}'


class AssetIntegrityCache:
    """Atomically replaceable cache of the two banner assets."""

    def __init__(
        self,
        sources: Mapping[AssetKind, AssetSource],
        *,
        clock: Callable[[], float] = time.time,
    ):
        missing = [k.value for k in AssetKind if k not in sources]
        if missing:
            raise ValueError(f'Missing asset sources: {", ".join(missing)}')
        self._sources = dict(sources)
        self._clock = clock
        self._snapshot: AssetSnapshot | None = None
        self._write_lock = Lock()

    @classmethod
    def from_directory(cls, directory: Path | str, **kwargs) -> 'AssetIntegrityCache':
        """Cache backed by ``consent-banner.{css,js}`` in ``directory``."""
        directory = Path(directory)
        return cls(
            {
                AssetKind.CSS: FileAssetSource(directory / 'consent-banner.css'),
                AssetKind.JS: FileAssetSource(directory / 'consent-banner.js'),
            },
            **kwargs,
        )

    def _load_entry(self, kind: AssetKind) -> AssetCacheEntry:
        try:
            content = self._sources[kind].read()
        except OSError as exc:
            raise AssetLoadError(kind, exc.strerror or str(exc)) from exc
        except Exception as exc:
            raise AssetLoadError(kind, f'{type(exc).__name__}: {exc}') from exc
        if isinstance(content, str):
            content = content.encode('utf-8')
        if not isinstance(content, bytes):
            raise AssetLoadError(kind, f'source returned {type(content).__name__}')
        return AssetCacheEntry(content=content, integrity=compute_integrity(content))

    def _next_version(self) -> int:
        stamp = int(self._clock() * 1000)
        current = self._snapshot
        if current is not None and stamp <= current.version:
            stamp = current.version + 1
        return stamp

    def reload(self, ticket: ReloadTicket | None = None) -> AssetSnapshot:
        """Load both assets and publish them under a new version.

        Raises:
            AssetLoadError: If either asset cannot be read, or ``ticket`` was
                abandoned before publishing. The previously published
                snapshot stays in place.
        """
        css = self._load_entry(AssetKind.CSS)
        js = self._load_entry(AssetKind.JS)
        with self._write_lock:
            if ticket is not None and ticket.abandoned:
                raise AssetLoadError(None, 'reload abandoned before publishing')
            snapshot = AssetSnapshot(css=css, js=js, version=self._next_version())
            self._snapshot = snapshot
            if ticket is not None:
                ticket.published = snapshot

        logger.info(
            'Banner assets loaded: version=%s css=%s js=%s',
            snapshot.version, css.integrity, js.integrity,
        )
        return snapshot

    def abandon(self, ticket: ReloadTicket) -> AssetSnapshot | None:
        """Stop the reload holding ``ticket`` from publishing.

        Returns the snapshot that reload already published, if it got there
        first; otherwise None and the reload will fail.
        """
        with self._write_lock:
            ticket.abandoned = True
            return ticket.published

    def snapshot(self) -> AssetSnapshot | None:
        """The currently published snapshot, or None before the first load."""
        return self._snapshot

    def get(self, kind: AssetKind | str) -> AssetCacheEntry | None:
        snapshot = self._snapshot
        if snapshot is None:
            return None
        return snapshot.entry(AssetKind(kind))

    def version(self) -> int | None:
        snapshot = self._snapshot
        return snapshot.version if snapshot is not None else None

    @property
    def is_ready(self) -> bool:
        return self._snapshot is not None
