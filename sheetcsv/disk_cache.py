# sheetcsv/disk_cache.py
"""Durable gzip cache for Drive downloads with a lock-file single-flight protocol.

Per fileId, inside `cache_dir`:
  drive_<id>.csv.gz              complete cache entry, never expires
  drive_<id>.lock                present only while a download is in flight
  drive_<id>.csv.gz.<token>.part  in-progress write, renamed onto the entry when done

A request either streams the cached entry, waits for another request's
download to finish, or takes the lock and downloads itself. The downloader
fans the Drive stream out to the HTTP client and to a gzip writer, so the
first caller gets bytes as they arrive while the cache fills in behind it.

Lock files are created with O_EXCL. A lock whose mtime is older than
`stale_after_s` is abandoned; the downloader touches its lock on a timer
while it writes, so only a dead download goes stale. Breaking a stale lock
also removes the `.part` files its dead download left behind.
"""
from __future__ import annotations
import asyncio
import logging
import os
import re
import time
import uuid
import zlib
from contextlib import AsyncExitStack
from pathlib import Path
from typing import AsyncIterator, Callable, Optional, Sequence, Set

import aiofiles

from sheetcsv.errors import CoordinationError, InvalidParameter, WrongFileType

logger = logging.getLogger(__name__)

FILE_ID_RE = re.compile(r"[A-Za-z0-9_-]+")
GZIP_WBITS = 16 + zlib.MAX_WBITS
READ_CHUNK = 64 * 1024

_EOF = object()


class _Branch:
    """One consumer's queue off the shared producer loop. maxsize=0 is unbounded."""

    def __init__(self, maxsize: int):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    async def put(self, item) -> None:
        if not self.closed:
            await self.queue.put(item)

    def close(self) -> None:
        # unblocks a producer waiting on a full queue; later puts are dropped
        self.closed = True
        while not self.queue.empty():
            self.queue.get_nowait()


class BranchStream:
    """Async byte iterator over the client branch of a tee'd download."""

    def __init__(self, branch: _Branch):
        self._branch = branch

    def __aiter__(self) -> "BranchStream":
        return self

    async def __anext__(self) -> bytes:
        if self._branch.closed:
            raise StopAsyncIteration
        item = await self._branch.queue.get()
        if item is _EOF:
            self._branch.close()
            raise StopAsyncIteration
        if isinstance(item, Exception):
            self._branch.close()
            raise item
        return item

    async def aclose(self) -> None:
        self._branch.close()


class DownloadCoordinator:
    def __init__(self, drive, cache_dir: str, extensions: Sequence[str] = (".csv",),
                 stale_after_s: float = 30.0, poll_interval_s: float = 0.5,
                 wait_timeout_s: float = 30.0, queue_size: int = 64,
                 clock: Callable[[], float] = time.time):
        self.drive = drive
        self.cache_dir = Path(cache_dir)
        self.extensions = tuple(e.lower() for e in extensions)
        self.stale_after_s = stale_after_s
        self.poll_interval_s = poll_interval_s
        self.wait_timeout_s = wait_timeout_s
        self.queue_size = queue_size
        self._clock = clock
        self._tasks: Set[asyncio.Task] = set()

    # -- paths ---------------------------------------------------------------

    def cache_path(self, file_id: str) -> Path:
        return self.cache_dir / f"drive_{file_id}.csv.gz"

    def lock_path(self, file_id: str) -> Path:
        return self.cache_dir / f"drive_{file_id}.lock"

    def _part_path(self, file_id: str, token: str) -> Path:
        return self.cache_dir / f"drive_{file_id}.csv.gz.{token}.part"

    def state(self, file_id: str) -> str:
        """One of 'cached', 'downloading', 'stale_lock', 'absent'."""
        if self.cache_path(file_id).exists():
            return "cached"
        age = self._lock_age(file_id)
        if age is None:
            return "absent"
        return "stale_lock" if age > self.stale_after_s else "downloading"

    # -- lock primitives (synchronous: no other request runs between steps) --

    def _lock_age(self, file_id: str) -> Optional[float]:
        try:
            return self._clock() - self.lock_path(file_id).stat().st_mtime
        except FileNotFoundError:
            return None

    def _acquire_lock(self, file_id: str) -> Optional[str]:
        """Exclusive-create the lock. None if someone else holds it."""
        token = uuid.uuid4().hex
        try:
            fd = os.open(self.lock_path(file_id), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            return None
        except OSError as e:
            logger.error("Unable to create lock file for %s: %s", file_id, e)
            raise CoordinationError("Unable to create lock file.") from e
        try:
            os.write(fd, f"{token} {self._clock():.3f}\n".encode("ascii"))
        finally:
            os.close(fd)
        return token

    def _release_lock(self, file_id: str, token: str) -> None:
        path = self.lock_path(file_id)
        try:
            owner = path.read_text(encoding="ascii").split(" ", 1)[0]
            if owner != token:
                # our lock was broken as stale and someone else re-locked
                return
            path.unlink()
            logger.info("Lock file for %s removed.", file_id)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Error removing lock file for %s: %s", file_id, e)

    def _break_lock(self, file_id: str, sweep_parts: bool = False) -> None:
        try:
            self.lock_path(file_id).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CoordinationError(f"Error removing stale lock file: {e}") from e
        if sweep_parts:
            self._remove_parts(file_id)

    def _remove_parts(self, file_id: str) -> None:
        for part in self.cache_dir.glob(f"drive_{file_id}.csv.gz.*.part"):
            try:
                part.unlink()
                logger.info("Removed abandoned partial file %s.", part.name)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error("Error removing partial cache file %s: %s", part, e)

    def _touch_lock(self, file_id: str) -> None:
        try:
            os.utime(self.lock_path(file_id))
        except OSError:
            pass

    async def _heartbeat(self, file_id: str) -> None:
        while True:
            await asyncio.sleep(self.stale_after_s / 3)
            self._touch_lock(file_id)

    async def _wait_for_unlock(self, file_id: str) -> None:
        start = time.monotonic()
        while True:
            age = self._lock_age(file_id)
            if age is None:
                return
            if age > self.stale_after_s:
                logger.warning("Lock file for %s is stale (age: %.1fs), removing it.", file_id, age)
                self._break_lock(file_id, sweep_parts=True)
                return
            if time.monotonic() - start >= self.wait_timeout_s:
                logger.warning("Timed out after %.1fs waiting on lock for %s; downloading again.",
                               self.wait_timeout_s, file_id)
                self._break_lock(file_id)
                return
            await asyncio.sleep(self.poll_interval_s)

    # -- entry point -----------------------------------------------------------

    async def open(self, file_id: str):
        """Resolve a download request to an async byte iterator with `aclose()`.

        Every error that can happen before the first byte is raised here, so
        the caller can still answer with a proper status code.
        """
        if not FILE_ID_RE.fullmatch(file_id or ""):
            raise InvalidParameter("fileId", file_id, "a Drive file id")
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CoordinationError(f"Unable to create cache directory: {e}") from e

        while True:
            if self.cache_path(file_id).exists():
                logger.info("Serving drive file %s from disk cache.", file_id)
                return self._read_cached(self.cache_path(file_id))
            age = self._lock_age(file_id)
            if age is not None:
                if age > self.stale_after_s:
                    logger.warning("Lock file for %s is stale (age: %.1fs), removing it.", file_id, age)
                    self._break_lock(file_id, sweep_parts=True)
                else:
                    logger.info("Lock file exists for %s. Waiting for download to complete...", file_id)
                    await self._wait_for_unlock(file_id)
                    continue
            token = self._acquire_lock(file_id)
            if token is not None:
                break
            # lost the race for the lock between the check and the create

        return await self._start_download(file_id, token)

    async def _read_cached(self, path: Path) -> AsyncIterator[bytes]:
        decomp = zlib.decompressobj(GZIP_WBITS)
        async with aiofiles.open(path, "rb") as f:
            while True:
                block = await f.read(READ_CHUNK)
                if not block:
                    break
                out = decomp.decompress(block)
                if out:
                    yield out
        tail = decomp.flush()
        if tail:
            yield tail

    async def _start_download(self, file_id: str, token: str) -> BranchStream:
        logger.info("Downloading drive file %s from Google Drive.", file_id)
        stack = AsyncExitStack()
        try:
            meta = await self.drive.get_metadata(file_id)
            if not meta.name.lower().endswith(self.extensions):
                logger.warning("Drive file %s (%r) rejected by extension.", file_id, meta.name)
                raise WrongFileType(f"File {meta.name!r} is not a CSV file based on its name.")
            chunks = await stack.enter_async_context(self.drive.open_media(file_id))
            first = await anext(chunks, None)
        except BaseException:
            await stack.aclose()
            self._release_lock(file_id, token)
            raise

        # unbounded: a stalled client must never hold back the disk write
        client = _Branch(0)
        disk = _Branch(self.queue_size)
        self._spawn(self._write_cache(file_id, token, disk))
        self._spawn(self._produce(file_id, stack, chunks, first, (client, disk)))
        return BranchStream(client)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _produce(self, file_id: str, stack: AsyncExitStack, chunks: AsyncIterator[bytes],
                       first: Optional[bytes], branches: Sequence[_Branch]) -> None:
        try:
            if first is not None:
                for b in branches:
                    await b.put(first)
                async for chunk in chunks:
                    for b in branches:
                        await b.put(chunk)
            for b in branches:
                await b.put(_EOF)
        except Exception as e:
            logger.error("Error downloading file %s from Drive: %s", file_id, e)
            for b in branches:
                await b.put(e)
        finally:
            await stack.aclose()

    async def _write_cache(self, file_id: str, token: str, branch: _Branch) -> None:
        part = self._part_path(file_id, token)
        done = False
        heartbeat = asyncio.create_task(self._heartbeat(file_id))
        try:
            comp = zlib.compressobj(wbits=GZIP_WBITS)
            async with aiofiles.open(part, "wb") as f:
                while True:
                    item = await branch.queue.get()
                    if item is _EOF:
                        break
                    if isinstance(item, Exception):
                        return
                    await f.write(comp.compress(item))
                await f.write(comp.flush())
            os.replace(part, self.cache_path(file_id))
            done = True
            logger.info("Finished writing file %s to cache.", file_id)
        except OSError as e:
            logger.error("Error writing cache file for %s: %s", file_id, e)
        finally:
            heartbeat.cancel()
            branch.close()
            if not done:
                try:
                    part.unlink()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    logger.error("Error removing partial cache file %s: %s", part, e)
            self._release_lock(file_id, token)

    async def wait_idle(self, timeout: Optional[float] = None) -> None:
        """Wait for background producer/writer tasks, e.g. at shutdown."""
        if self._tasks:
            await asyncio.wait(set(self._tasks), timeout=timeout)
