"""File sources for bundles: local directories, the web and caches."""

from __future__ import annotations

import abc
import contextlib
import io
import logging
import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import BinaryIO, Union

import requests

logger = logging.getLogger(__name__)

_DISCARD_CHUNK = 64 * 1024

CDN_BASE = "http://patch.poecdn.com/"


class BundleFsError(Exception):
    """A file could not be fetched from a bundle file source."""


class FileContents:
    """A readable stream of a file's contents that can skip bytes cheaply."""

    def __init__(self, source: Union[bytes, bytearray, memoryview, BinaryIO]) -> None:
        if isinstance(source, (bytes, bytearray, memoryview)):
            source = io.BytesIO(bytes(source))
        self._stream = source

    def read(self, size: int = -1) -> bytes:
        """Read ``size`` bytes, fewer only at end of file; everything if negative."""
        if size is None or size < 0:
            return self._stream.read()
        parts = []
        remaining = size
        while remaining > 0:
            chunk = self._stream.read(remaining)
            if not chunk:
                break
            parts.append(chunk)
            remaining -= len(chunk)
        return b"".join(parts)

    def _seekable(self) -> bool:
        try:
            return bool(self._stream.seekable())
        except (AttributeError, OSError, ValueError):
            return False

    def discard(self, n: int) -> None:
        """Skip ``n`` bytes, seeking if the stream allows it."""
        try:
            if self._seekable():
                self._stream.seek(n, io.SEEK_CUR)
                return
            remaining = n
            while remaining > 0:
                chunk = self._stream.read(min(remaining, _DISCARD_CHUNK))
                if not chunk:
                    break
                remaining -= len(chunk)
        except OSError as err:
            raise BundleFsError(str(err)) from err

    def close(self) -> None:
        """Release the underlying stream."""
        close = getattr(self._stream, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "FileContents":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class BundleFs(abc.ABC):
    """A source of bundle files addressed by relative name."""

    @abc.abstractmethod
    def get(self, name: str) -> FileContents:
        """Open the named file."""


class LocalBundleFs(BundleFs):
    """Bundle files from a local game installation directory."""

    def __init__(self, base: Union[str, os.PathLike]) -> None:
        self.base = Path(base)

    def get(self, name: str) -> FileContents:
        try:
            return FileContents(open(self.base / name, "rb"))
        except OSError as err:
            raise BundleFsError(str(err)) from err

    def __repr__(self) -> str:
        return f"LocalBundleFs(base={str(self.base)!r})"


class Cache(abc.ABC):
    """Caches files produced by another bundle file source."""

    @abc.abstractmethod
    def get(self, name: str, producer: BundleFs) -> FileContents:
        """Return the cached file, fetching it from ``producer`` when missing."""


class InMemoryCache(Cache):
    """Keeps every fetched file in memory."""

    def __init__(self) -> None:
        self._entries: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, name: str, producer: BundleFs) -> FileContents:
        with self._lock:
            data = self._entries.get(name)
        if data is not None:
            return FileContents(data)

        with producer.get(name) as contents:
            fetched = contents.read()

        with self._lock:
            data = self._entries.setdefault(name, fetched)
        return FileContents(data)


class LocalCache(Cache):
    """Mirrors fetched files into a local directory."""

    def __init__(self, base: Union[str, os.PathLike]) -> None:
        self.base = Path(base)

    def get(self, name: str, producer: BundleFs) -> FileContents:
        path = self.base / name
        try:
            return FileContents(open(path, "rb"))
        except OSError:
            pass

        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.base)
        except OSError as err:
            raise BundleFsError(str(err)) from err

        try:
            with os.fdopen(fd, "wb") as tmp, producer.get(name) as data:
                shutil.copyfileobj(data, tmp)
        except BaseException as err:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            if isinstance(err, OSError):
                raise BundleFsError(str(err)) from err
            raise

        with contextlib.suppress(OSError):
            path.parent.mkdir(parents=True, exist_ok=True)

        try:
            os.replace(tmp_name, path)
        except OSError as err:
            logger.warning("failed to rename tmp file %r", err)
            try:
                with open(tmp_name, "rb") as tmp:
                    contents = tmp.read()
            except OSError as read_err:
                raise BundleFsError(str(read_err)) from read_err
            finally:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
            return FileContents(contents)

        try:
            return FileContents(open(path, "rb"))
        except OSError as err:
            raise BundleFsError(str(err)) from err


class CacheBundleFs(BundleFs):
    """A bundle file source whose files pass through a cache."""

    def __init__(self, inner: BundleFs, cache: Cache) -> None:
        self.inner = inner
        self.cache = cache

    def get(self, name: str) -> FileContents:
        return self.cache.get(name, self.inner)


class WebBundleFs(BundleFs):
    """Bundle files fetched over HTTP from a base URL."""

    def __init__(self, base: str, session=None) -> None:
        self.base = base
        self._http = session if session is not None else requests

    @classmethod
    def cdn(cls, version: str) -> "WebBundleFs":
        """A source for the patch CDN at the given patch version."""
        return cls(f"{CDN_BASE}{version}/")

    def get(self, name: str) -> FileContents:
        logger.info("requesting file from web fs: %s", name)
        try:
            response = self._http.get(f"{self.base}{name}", stream=True)
            response.raise_for_status()
        except requests.RequestException as err:
            raise BundleFsError(str(err)) from err
        raw = response.raw
        raw.decode_content = True
        return FileContents(raw)

    def __repr__(self) -> str:
        return f"WebBundleFs(base={self.base!r})"