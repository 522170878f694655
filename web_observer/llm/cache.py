import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, NamedTuple, Optional

from ..core.log import Logger, aux, default_logger, log_line


class CacheKey(NamedTuple):
    request_id: str
    digest: str


@dataclass
class CacheEntry:
    response: Dict[str, Any]
    prompt_tokens: int = 0
    completion_tokens: int = 0
    inference_time_ms: int = 0


def make_cache_key(request_id: str, payload: Dict[str, Any]) -> CacheKey:
    """Identical payloads under different request ids get different keys."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return CacheKey(request_id, hashlib.sha256(canonical.encode("utf-8")).hexdigest())


class ResponseCache:
    """In-memory model response cache, grouped by the request id that created each entry.

    Single process, single logical session: callers that share an instance
    across concurrent sessions must add their own locking.
    """

    def __init__(self, logger: Logger = default_logger):
        self.logger = logger
        self._entries: Dict[str, Dict[str, CacheEntry]] = {}

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        entry = self._entries.get(key.request_id, {}).get(key.digest)
        if entry is not None:
            self.logger(log_line("llm_cache", "cache hit", 2, aux(requestId=key.request_id)))
        return entry

    def set(self, key: CacheKey, value: CacheEntry) -> None:
        self._entries.setdefault(key.request_id, {})[key.digest] = value

    def delete_for_request(self, request_id: str) -> int:
        removed = self._entries.pop(request_id, {})
        return len(removed)

    def __len__(self) -> int:
        return sum(len(v) for v in self._entries.values())
