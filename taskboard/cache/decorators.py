from functools import wraps
from typing import Callable


def async_cached(key_builder: Callable[..., str], ttl: int | None = None):
    """
    Decorator for async service methods. The owning instance must expose
    `cache` (a CacheLayer); key_builder receives the same args/kwargs.
    Example:
      @async_cached(lambda self, *_, **__: "tasks")
      async def list_tasks(self): ...
    """

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(self, *args, **kwargs):
            key = key_builder(self, *args, **kwargs)

            # loader closure calls the original function
            async def loader():
                value = await fn(self, *args, **kwargs)
                if value is None:
                    return None
                if hasattr(value, "model_dump"):
                    return value.model_dump(mode="json")
                return value

            return await self.cache.get(key, loader=loader, ttl=ttl)

        return wrapper

    return decorator


def async_cached_expire(key_builder: Callable[..., str]):
    """Invalidate the key once the wrapped write has completed without raising."""

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(self, *args, **kwargs):
            result = await fn(self, *args, **kwargs)
            await self.cache.delete(key_builder(self, *args, **kwargs))
            return result

        return wrapper

    return decorator
