import asyncio
import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from storefront.cache.constants import logger
from storefront.cache.transaction import CacheTransaction
from storefront.cache.utils import Tag, normalize_tags, query_key, tags_match
from storefront.config.settings import client_settings

Fetcher = Callable[[], Awaitable[Any]]
Recipe = Callable[[Any], Any]


class QueryStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


@dataclass(frozen=True)
class QuerySnapshot:
    """Read-only view of a cache entry handed to subscribers."""
    key: str
    value: Any
    generation: int
    status: QueryStatus
    stale: bool
    fetching: bool
    error: Optional[BaseException] = None

    @property
    def has_data(self) -> bool:
        return self.status is not QueryStatus.UNINITIALIZED and self.value is not None


@dataclass
class _Patch:
    patch_id: int
    txn_id: int
    recipe: Recipe
    committed_seq: Optional[int] = None


@dataclass
class CacheEntry:
    key: str
    endpoint: str
    args: Any
    tags: frozenset = frozenset()
    fetcher: Optional[Fetcher] = None
    base: Any = None
    has_base: bool = False
    base_seq: int = 0
    value: Any = None
    patches: List[_Patch] = field(default_factory=list)
    generation: int = 0
    status: QueryStatus = QueryStatus.UNINITIALIZED
    stale: bool = False
    error: Optional[BaseException] = None
    subscribers: Dict[int, Callable[[QuerySnapshot], None]] = field(default_factory=dict)
    inflight: Optional[asyncio.Future] = None
    refetch_requested: bool = False
    gc_handle: Optional[asyncio.TimerHandle] = None

    def snapshot(self) -> QuerySnapshot:
        return QuerySnapshot(
            key=self.key,
            value=self.value,
            generation=self.generation,
            status=self.status,
            stale=self.stale,
            fetching=self.inflight is not None and not self.inflight.done(),
            error=self.error,
        )


class Subscription:
    def __init__(self, cache: "QueryCache", key: str, subscriber_id: int):
        self._cache = cache
        self.key = key
        self.subscriber_id = subscriber_id
        self.active = True

    @property
    def snapshot(self) -> Optional[QuerySnapshot]:
        entry = self._cache._entries.get(self.key)
        return entry.snapshot() if entry else None

    async def refetch(self) -> Any:
        return await self._cache.refetch_key(self.key)

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._cache._unsubscribe(self.key, self.subscriber_id)


class QueryCache:
    """
    In-memory store of query results, one entry per (endpoint, args).

    Each entry keeps the last authoritative value (`base`) and an ordered log
    of provisional patches; the visible value is the patches folded over the
    base. Authoritative writes (fetches, `upsert_query_data`) replace the base,
    drop patches committed before the write started and replay the rest.
    All bookkeeping runs on the event loop thread without awaiting, so a
    patch and its subscriber notifications happen atomically between network
    round trips.
    """

    def __init__(self, keep_unused_for: Optional[float] = None):
        self.keep_unused_for = client_settings.KEEP_UNUSED_DATA_FOR if keep_unused_for is None else keep_unused_for
        self._entries: Dict[str, CacheEntry] = {}
        self._seq = itertools.count(1)
        self._subscriber_ids = itertools.count(1)
        self._background: Set[asyncio.Task] = set()

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _next_seq(self) -> int:
        return next(self._seq)

    def _get_or_create(self, endpoint: str, args: Any = None) -> CacheEntry:
        key = query_key(endpoint, args)
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key, endpoint=endpoint, args=args)
            self._entries[key] = entry
            logger.debug("cache.entry_created", extra={"cache_key": key})
        return entry

    def _register(self, endpoint: str, args: Any, fetcher: Optional[Fetcher] = None,
                  tags: Iterable[Tag] = ()) -> CacheEntry:
        # whichever call touches an entry first, it must end up invalidatable and refetchable
        entry = self._get_or_create(endpoint, args)
        if fetcher is not None:
            entry.fetcher = fetcher
        if tags:
            entry.tags = normalize_tags(tags)
        return entry

    def _notify(self, entry: CacheEntry) -> None:
        entry.generation += 1
        snap = entry.snapshot()
        for callback in list(entry.subscribers.values()):
            try:
                callback(snap)
            except Exception:
                logger.exception("cache.subscriber_failed", extra={"cache_key": entry.key})

    # ── reads ────────────────────────────────────────────────────────────

    def select(self, endpoint: str, args: Any = None) -> Optional[QuerySnapshot]:
        entry = self._entries.get(query_key(endpoint, args))
        return entry.snapshot() if entry else None

    async def query(self, endpoint: str, args: Any, fetcher: Fetcher, *,
                    tags: Iterable[Tag] = (), force: bool = False) -> Any:
        """Return the cached value when fresh, otherwise fetch (de-duplicated per key)."""
        entry = self._register(endpoint, args, fetcher, tags)

        if entry.has_base and not entry.stale and not force and entry.inflight is None:
            if not entry.subscribers:
                self._schedule_gc(entry)
            return entry.value

        task = self._start_fetch(entry, force=force)
        # a cancelled caller must not cancel the fetch other readers share
        return await asyncio.shield(task)

    async def refetch_key(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None or entry.fetcher is None:
            return None
        return await asyncio.shield(self._start_fetch(entry, force=True))

    def _start_fetch(self, entry: CacheEntry, force: bool = False) -> asyncio.Future:
        if entry.inflight is not None and not entry.inflight.done():
            if force:
                entry.refetch_requested = True
            return entry.inflight

        started_seq = self._next_seq()
        if not entry.has_base:
            entry.status = QueryStatus.PENDING
        task = asyncio.ensure_future(self._run_fetch(entry, started_seq))
        entry.inflight = task
        return task

    async def _run_fetch(self, entry: CacheEntry, started_seq: int) -> Any:
        try:
            result = await entry.fetcher()
        except Exception as exc:
            entry.inflight = None
            entry.error = exc
            entry.status = QueryStatus.REJECTED if not entry.has_base else entry.status
            logger.warning("cache.fetch_failed", extra={"cache_key": entry.key, "error": repr(exc)})
            self._notify(entry)
            self._after_fetch(entry)
            raise

        entry.inflight = None
        self._reconcile(entry, result, started_seq)
        self._after_fetch(entry)
        return entry.value

    def _after_fetch(self, entry: CacheEntry) -> None:
        if entry.refetch_requested:
            entry.refetch_requested = False
            entry.stale = True
            if entry.subscribers and self._entries.get(entry.key) is entry:
                self._spawn_refetch(entry)
                return
        if not entry.subscribers:
            self._schedule_gc(entry)

    def _spawn_refetch(self, entry: CacheEntry) -> None:
        if entry.fetcher is None:
            return

        async def refetch_quietly():
            try:
                await self._start_fetch(entry)
            except Exception as exc:
                # the error is already on the entry for subscribers to render
                logger.debug("cache.background_refetch_failed", extra={"cache_key": entry.key, "error": repr(exc)})

        task = asyncio.ensure_future(refetch_quietly())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ── authoritative writes ─────────────────────────────────────────────

    def _reconcile(self, entry: CacheEntry, value: Any, started_seq: int) -> None:
        if started_seq < entry.base_seq:
            # an older request finished after a newer authoritative write
            logger.debug("cache.stale_response_ignored", extra={"cache_key": entry.key})
            return
        entry.base_seq = started_seq
        entry.base = value
        entry.has_base = True
        entry.patches = [
            p for p in entry.patches
            if p.committed_seq is None or p.committed_seq > started_seq
        ]
        entry.value = self._replay(entry)
        entry.status = QueryStatus.FULFILLED
        entry.stale = entry.refetch_requested
        entry.error = None
        self._notify(entry)

    def _replay(self, entry: CacheEntry) -> Any:
        value = entry.base
        kept = []
        for p in entry.patches:
            try:
                value = p.recipe(value)
            except Exception:
                logger.exception("cache.patch_replay_failed", extra={"cache_key": entry.key, "patch_id": p.patch_id})
                continue
            kept.append(p)
        entry.patches = kept
        return value

    def upsert_query_data(self, endpoint: str, args: Any, value: Any, *,
                          fetcher: Optional[Fetcher] = None, tags: Iterable[Tag] = ()) -> QuerySnapshot:
        """Write a server-confirmed value; pending patches are replayed on top of it."""
        entry = self._register(endpoint, args, fetcher, tags)
        self._reconcile(entry, value, self._next_seq())
        if not entry.subscribers:
            self._schedule_gc(entry)
        return entry.snapshot()

    # ── provisional writes ───────────────────────────────────────────────

    def transaction(self, endpoint: str, args: Any = None, *,
                    fetcher: Optional[Fetcher] = None, tags: Iterable[Tag] = ()) -> CacheTransaction:
        entry = self._register(endpoint, args, fetcher, tags)
        return CacheTransaction(self, entry, self._next_seq())

    def update_query_data(self, endpoint: str, args: Any, recipe: Recipe) -> CacheTransaction:
        """Patch an entry and hand back the open transaction (call `undo()` to revert)."""
        txn = self.transaction(endpoint, args)
        txn.patch(recipe)
        return txn

    def _apply_patch(self, entry: CacheEntry, txn: CacheTransaction, recipe: Recipe) -> bool:
        if not entry.has_base:
            logger.debug("cache.patch_skipped_no_data", extra={"cache_key": entry.key})
            return False

        new_value = recipe(entry.value)
        patch = _Patch(patch_id=self._next_seq(), txn_id=txn.txn_id, recipe=recipe)
        entry.patches.append(patch)
        txn.patch_ids.append(patch.patch_id)
        if new_value is not entry.value:
            entry.value = new_value
            self._notify(entry)
        return True

    def _commit(self, entry: CacheEntry, txn: CacheTransaction) -> None:
        seq = self._next_seq()
        for p in entry.patches:
            if p.txn_id == txn.txn_id:
                p.committed_seq = seq
        if not entry.subscribers:
            self._schedule_gc(entry)

    def _confirm(self, entry: CacheEntry, txn: CacheTransaction, value: Any) -> None:
        if txn.txn_id < entry.base_seq:
            # a newer authoritative value already landed; keep the patch until the next fetch
            self._commit(entry, txn)
            return
        # the server's answer reflects state as of the transaction's start
        entry.patches = [p for p in entry.patches if p.txn_id != txn.txn_id]
        self._reconcile(entry, value, txn.txn_id)
        if not entry.subscribers:
            self._schedule_gc(entry)

    def _rollback(self, entry: CacheEntry, txn: CacheTransaction) -> None:
        before = len(entry.patches)
        entry.patches = [p for p in entry.patches if p.txn_id != txn.txn_id]
        if len(entry.patches) != before:
            new_value = self._replay(entry)
            logger.debug("cache.rollback", extra={"cache_key": entry.key, "txn_id": txn.txn_id})
            if new_value is not entry.value:
                entry.value = new_value
                self._notify(entry)
        if not entry.subscribers:
            self._schedule_gc(entry)

    # ── invalidation ─────────────────────────────────────────────────────

    def invalidate_tags(self, *tags: Tag) -> int:
        """Mark entries providing any of `tags` stale; subscribed ones re-fetch in the background."""
        wanted = normalize_tags(tags)
        hits = 0
        for entry in list(self._entries.values()):
            if not tags_match(entry.tags, wanted):
                continue
            hits += 1
            if entry.inflight is not None and not entry.inflight.done():
                entry.refetch_requested = True
                continue
            entry.stale = True
            self._notify(entry)
            if entry.subscribers:
                self._spawn_refetch(entry)
        logger.debug("cache.invalidate", extra={"tags": sorted(map(str, wanted)), "entries": hits})
        return hits

    # ── subscriptions & garbage collection ───────────────────────────────

    def subscribe(self, endpoint: str, args: Any, callback: Callable[[QuerySnapshot], None], *,
                  fetcher: Optional[Fetcher] = None, tags: Iterable[Tag] = (),
                  refetch_on_subscribe: bool = False) -> Subscription:
        """
        Register `callback` for every change of the entry. With a `fetcher`
        the entry is loaded in the background when empty or stale, or always
        with `refetch_on_subscribe` (a freshly opened view).
        """
        entry = self._register(endpoint, args, fetcher, tags)
        if entry.gc_handle is not None:
            entry.gc_handle.cancel()
            entry.gc_handle = None

        sid = next(self._subscriber_ids)
        entry.subscribers[sid] = callback
        needs_data = refetch_on_subscribe or not entry.has_base or entry.stale
        if entry.fetcher is not None and needs_data and entry.inflight is None:
            self._spawn_refetch(entry)
        return Subscription(self, entry.key, sid)

    def _unsubscribe(self, key: str, subscriber_id: int) -> None:
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.subscribers.pop(subscriber_id, None)
        if not entry.subscribers:
            self._schedule_gc(entry)

    def _schedule_gc(self, entry: CacheEntry) -> None:
        if entry.gc_handle is not None:
            entry.gc_handle.cancel()
            entry.gc_handle = None
        if self.keep_unused_for <= 0:
            self._collect(entry.key)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._collect(entry.key)
            return
        entry.gc_handle = loop.call_later(self.keep_unused_for, self._collect, entry.key)

    def _collect(self, key: str) -> None:
        entry = self._entries.get(key)
        if entry is None or entry.subscribers:
            return
        if entry.inflight is not None and not entry.inflight.done():
            # _after_fetch reschedules once the fetch settles
            return
        del self._entries[key]
        logger.debug("cache.entry_collected", extra={"cache_key": key})

    # ── lifecycle ────────────────────────────────────────────────────────

    async def settle(self) -> None:
        """Wait for background re-fetches, including ones they trigger."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*list(self._background), return_exceptions=True)
        for entry in self._entries.values():
            if entry.gc_handle is not None:
                entry.gc_handle.cancel()
        self._entries.clear()
