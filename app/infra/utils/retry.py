import asyncio
import random
from functools import wraps
from typing import Awaitable, Callable, ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    jitter: float = 0.1,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """
    Re-run a coroutine function when it raises one of `retry_on`.

    The wait starts at `delay` and is multiplied by `backoff` after each
    failure, plus up to `jitter` random seconds. The last error is re-raised
    once `max_attempts` calls have failed.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            current_delay = delay
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except retry_on:
                    if attempt >= max_attempts:
                        raise
                    await asyncio.sleep(current_delay)
                    current_delay = current_delay * backoff + random.uniform(0, jitter)
                    attempt += 1

        return wrapper

    return decorator
