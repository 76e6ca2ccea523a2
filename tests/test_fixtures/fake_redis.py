"""
In-memory stand-in for ``redis.asyncio.Redis``.

Implements the commands RedisClient issues, with key expiry driven by a
controllable clock, so store, limiter and token tests run without a
server. Wrap it with ``RedisClient.from_client(FakeRedis(clock), settings)``.

Failure injection:
    fake.down = True               every command raises ConnectionError
    fake.fail_on = {"zadd"}        only the named commands raise
"""

import re
from typing import Any

from redis.exceptions import ConnectionError, ResponseError


class FakeClock:
    """Wall-clock seconds that only move when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.current = start

    def now(self) -> float:
        return self.current

    def millis(self) -> int:
        return round(self.current * 1000)

    def advance(self, seconds: float) -> None:
        self.current += seconds


def glob_to_regex(pattern: str) -> re.Pattern:
    """Redis MATCH glob (``* ? [..]`` and backslash escapes) as a regex."""
    out = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if char == "*":
            out.append(".*")
        elif char == "?":
            out.append(".")
        elif char == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(char))
            else:
                out.append(f"[{pattern[i + 1:end]}]")
                i = end
        else:
            out.append(re.escape(char))
        i += 1
    return re.compile("^" + "".join(out) + "$", re.DOTALL)


class FakePipeline:
    def __init__(self, redis: "FakeRedis"):
        self._redis = redis
        self._queued: list[tuple[str, tuple]] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self._queued.clear()

    def _queue(self, name: str, *args) -> "FakePipeline":
        self._queued.append((name, args))
        return self

    def set(self, key, value):
        return self._queue("set", key, value)

    def setex(self, key, ttl, value):
        return self._queue("setex", key, ttl, value)

    def delete(self, *keys):
        return self._queue("delete", *keys)

    def zadd(self, key, mapping):
        return self._queue("zadd", key, mapping)

    def expire(self, key, ttl):
        return self._queue("expire", key, ttl)

    def incr(self, key):
        return self._queue("incr", key)

    async def execute(self) -> list[Any]:
        self._redis._check("pipeline")
        results = []
        for name, args in self._queued:
            results.append(await getattr(self._redis, name)(*args))
        self._queued.clear()
        return results


class FakeRedis:
    """Subset of the redis.asyncio.Redis API with string responses."""

    def __init__(self, clock: FakeClock | None = None):
        self.clock = clock or FakeClock()
        self.data: dict[str, Any] = {}
        self.expires_at: dict[str, float] = {}
        self.down = False
        self.fail_on: set[str] = set()
        self.calls: list[str] = []
        self.closed = False
        self._scan_cursors: dict[int, list[str]] = {}
        self._last_cursor = 0

    # -- plumbing --------------------------------------------------------

    def _check(self, command: str) -> None:
        self.calls.append(command)
        if self.down or command in self.fail_on:
            raise ConnectionError(f"fake redis unavailable ({command})")

    def _purge(self, key: str) -> None:
        deadline = self.expires_at.get(key)
        if deadline is not None and self.clock.now() >= deadline:
            self.data.pop(key, None)
            self.expires_at.pop(key, None)

    def _live_keys(self) -> list[str]:
        for key in list(self.data):
            self._purge(key)
        return list(self.data)

    def _zset(self, key: str) -> dict[str, float]:
        self._purge(key)
        value = self.data.get(key)
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
        return value

    # -- strings ---------------------------------------------------------

    async def ping(self) -> bool:
        self._check("ping")
        return True

    async def get(self, key: str) -> str | None:
        self._check("get")
        self._purge(key)
        value = self.data.get(key)
        if value is not None and not isinstance(value, str):
            raise ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
        return value

    async def set(self, key: str, value: str) -> bool:
        self._check("set")
        self.data[key] = value
        self.expires_at.pop(key, None)
        return True

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._check("setex")
        self.data[key] = value
        self.expires_at[key] = self.clock.now() + ttl
        return True

    async def delete(self, *keys: str) -> int:
        self._check("delete")
        removed = 0
        for key in keys:
            self._purge(key)
            if key in self.data:
                del self.data[key]
                self.expires_at.pop(key, None)
                removed += 1
        return removed

    async def exists(self, *keys: str) -> int:
        self._check("exists")
        count = 0
        for key in keys:
            self._purge(key)
            count += key in self.data
        return count

    async def mget(self, keys: list[str]) -> list[str | None]:
        self._check("mget")
        values = []
        for key in keys:
            self._purge(key)
            values.append(self.data.get(key))
        return values

    async def incr(self, key: str) -> int:
        self._check("incr")
        self._purge(key)
        try:
            value = int(self.data.get(key, "0")) + 1
        except (TypeError, ValueError):
            raise ResponseError("ERR value is not an integer or out of range") from None
        self.data[key] = str(value)
        return value

    # -- expiry ----------------------------------------------------------

    async def expire(self, key: str, ttl: int) -> bool:
        self._check("expire")
        self._purge(key)
        if key not in self.data:
            return False
        self.expires_at[key] = self.clock.now() + ttl
        return True

    async def ttl(self, key: str) -> int:
        self._check("ttl")
        self._purge(key)
        if key not in self.data:
            return -2
        deadline = self.expires_at.get(key)
        if deadline is None:
            return -1
        return max(0, round(deadline - self.clock.now()))

    # -- keyspace --------------------------------------------------------

    async def scan(self, cursor: int = 0, match: str | None = None, count: int | None = None):
        """
        Pages of ``count`` keys. Cursor 0 snapshots the keyspace; later
        cursors walk that snapshot, so deletes between pages skip nothing.
        """
        self._check("scan")
        remaining = sorted(self._live_keys()) if cursor == 0 else self._scan_cursors.pop(cursor, [])
        page_size = count or 10
        page, rest = remaining[:page_size], remaining[page_size:]
        next_cursor = 0
        if rest:
            self._last_cursor += 1
            next_cursor = self._last_cursor
            self._scan_cursors[next_cursor] = rest
        page = [key for key in page if key in self.data]
        if match is not None:
            regex = glob_to_regex(match)
            page = [key for key in page if regex.match(key)]
        return next_cursor, page

    async def info(self, section: str | None = None) -> dict[str, Any]:
        self._check("info")
        if section == "keyspace":
            return {"db0": {"keys": len(self._live_keys()), "expires": len(self.expires_at)}}
        return {"keyspace_hits": 0, "keyspace_misses": 0}

    # -- sorted sets -----------------------------------------------------

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        self._check("zadd")
        zset = self._zset(key)
        added = sum(1 for member in mapping if member not in zset)
        zset.update(mapping)
        self.data[key] = zset
        return added

    async def zcard(self, key: str) -> int:
        self._check("zcard")
        return len(self._zset(key))

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        self._check("zremrangebyscore")
        zset = self._zset(key)
        doomed = [member for member, score in zset.items() if min_score <= score <= max_score]
        for member in doomed:
            del zset[member]
        return len(doomed)

    # -- streams ---------------------------------------------------------

    async def xadd(self, name: str, fields: dict[str, str], maxlen: int | None = None, approximate: bool = True) -> str:
        self._check("xadd")
        stream = self.data.setdefault(name, [])
        message_id = f"{self.clock.millis()}-{len(stream)}"
        stream.append((message_id, dict(fields)))
        if maxlen is not None and len(stream) > maxlen:
            del stream[: len(stream) - maxlen]
        return message_id

    # -- lifecycle -------------------------------------------------------

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    async def aclose(self) -> None:
        self.closed = True
