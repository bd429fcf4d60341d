from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, List

from storefront.common.custom_exceptions import TransactionClosedError

if TYPE_CHECKING:
    from storefront.cache.store import CacheEntry, QueryCache


class TransactionState(str, Enum):
    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class CacheTransaction:
    """
    Provisional changes to one cache entry: begin -> patch(fn) -> commit() | rollback().

    Patches are applied (and subscribers notified) synchronously inside
    `patch()`. `rollback()` removes exactly this transaction's patches; any
    patch applied later by another transaction survives. A committed patch
    stays visible until a fetch that started after the commit replaces it.

    Used as a context manager the transaction rolls back when the block
    raises and commits otherwise:

        with cache.transaction("getCart") as txn:
            txn.patch(lambda cart: patch_update_quantity(cart, pid, 3))
            await api.patch(f"/cart/items/{pid}", json={"quantity": 3})
    """

    def __init__(self, cache: "QueryCache", entry: "CacheEntry", txn_id: int):
        self._cache = cache
        self._entry = entry
        self.txn_id = txn_id
        self.patch_ids: List[int] = []
        self.state = TransactionState.OPEN

    @property
    def key(self) -> str:
        return self._entry.key

    @property
    def patched(self) -> bool:
        return bool(self.patch_ids)

    def _ensure_open(self) -> None:
        if self.state is not TransactionState.OPEN:
            raise TransactionClosedError(f"transaction {self.txn_id} on {self.key} is already {self.state.value}")

    def patch(self, recipe: Callable[[Any], Any]) -> bool:
        """Apply `recipe(current_value) -> new_value`. Returns False when the entry holds no data."""
        self._ensure_open()
        return self._cache._apply_patch(self._entry, self, recipe)

    def commit(self) -> None:
        self._ensure_open()
        self._cache._commit(self._entry, self)
        self.state = TransactionState.COMMITTED

    def confirm(self, value: Any) -> None:
        """
        Commit with the server's resulting value. It replaces this
        transaction's patches and becomes the new base; patches committed by
        other transactions after this one began are replayed on top.
        """
        self._ensure_open()
        self._cache._confirm(self._entry, self, value)
        self.state = TransactionState.COMMITTED

    def rollback(self) -> None:
        self._ensure_open()
        self._cache._rollback(self._entry, self)
        self.state = TransactionState.ROLLED_BACK

    # alias matching the patch-result style of query libraries
    undo = rollback

    def __enter__(self) -> "CacheTransaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self.state is TransactionState.OPEN:
            if exc_type is not None:
                self.rollback()
            else:
                self.commit()
        return False
