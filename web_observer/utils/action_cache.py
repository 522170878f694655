"""
Instruction -> ObserveResult cache kept in a JSON file, so a repeated
instruction can be acted on without asking the model again.
"""

import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..core.log import Logger, aux, default_logger, log_line
from ..core.types import ObserveResult

DEFAULT_CACHE_PATH = Path("cache.json")

PathLike = Union[str, Path]


def _load(path: Path) -> Dict[str, ObserveResult]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def simple_cache(instruction: str, result: ObserveResult, path: PathLike = DEFAULT_CACHE_PATH,
                 logger: Logger = default_logger) -> None:
    """Store result under instruction, keeping every other cached entry."""
    path = Path(path)
    cache = _load(path)
    cache[instruction] = result
    try:
        path.write_text(json.dumps(cache, indent=2), encoding="utf-8")
    except OSError as e:
        logger(log_line("cache", "failed to save to cache", 0, aux(path=str(path), error=str(e))))


def read_cache(instruction: str, path: PathLike = DEFAULT_CACHE_PATH) -> Optional[ObserveResult]:
    return _load(Path(path)).get(instruction) or None


async def act_with_cache(
    instruction: str,
    observe: Callable[[str], Awaitable[List[ObserveResult]]],
    act: Callable[[ObserveResult], Awaitable[Any]],
    path: PathLike = DEFAULT_CACHE_PATH,
    logger: Logger = default_logger,
) -> Optional[ObserveResult]:
    """Act on the cached result for instruction, or observe once, cache the first result and act on it.

    Returns the action taken, or None when observe found nothing.
    """
    cached = read_cache(instruction, path)
    if cached:
        logger(log_line("cache", "using cached action", 1, aux(instruction=instruction)))
        await act(cached)
        return cached

    results = await observe(instruction)
    if not results:
        logger(log_line("cache", "observe returned no elements, nothing cached", 1,
                        aux(instruction=instruction)))
        return None

    action = results[0]
    logger(log_line("cache", "taking cacheable action", 1, aux(action=dict(action))))
    simple_cache(instruction, action, path, logger)
    await act(action)
    return action
