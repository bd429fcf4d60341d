import hashlib
from typing import Any, FrozenSet, Iterable, Tuple, Union

import orjson

Tag = Union[str, Tuple[str, Any]]


def build_key(*parts: str) -> str:
    joined = ":".join(p for p in parts if p is not None and p != "")
    if len(joined) > 200:
        return hashlib.sha256(joined.encode()).hexdigest()
    return joined


def _default(value: Any) -> Any:
    # pydantic models and anything else exposing model_dump
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"cannot serialize {type(value).__name__} into a cache key")


def serialize_args(args: Any) -> str:
    if args is None:
        return ""
    return orjson.dumps(args, option=orjson.OPT_SORT_KEYS, default=_default).decode()


def query_key(endpoint: str, args: Any = None) -> str:
    """One cache entry per endpoint + serialized arguments."""
    return build_key(endpoint, serialize_args(args))


def normalize_tags(tags: Iterable[Tag]) -> FrozenSet[Tag]:
    out = set()
    for tag in tags:
        if isinstance(tag, (list, tuple)):
            kind, ident = tag
            out.add((kind, str(ident)))
        else:
            out.add(tag)
    return frozenset(out)


def tags_match(provided: FrozenSet[Tag], invalidated: FrozenSet[Tag]) -> bool:
    """
    A bare tag ("Orders") invalidates every provider of that type, with or
    without an id. An id tag (("Orders", "42")) invalidates providers of that
    exact id and providers of the bare type.
    """
    for tag in invalidated:
        if isinstance(tag, tuple):
            if tag in provided or tag[0] in provided:
                return True
        elif tag in provided or any(isinstance(p, tuple) and p[0] == tag for p in provided):
            return True
    return False
