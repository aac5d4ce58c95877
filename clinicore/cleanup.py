"""Resource cleanup for database handles and other closeable objects."""

import logging

import asyncio
import typing as t

logger = logging.getLogger(__name__)

_CLOSE_METHODS = ("close", "aclose", "disconnect", "dispose")


class CleanupMixin:
    """Track closeable resources and release them once."""

    def __init__(self) -> None:
        self._resources: list[t.Any] = []
        self._cleaned_up = False
        self._cleanup_lock: asyncio.Lock | None = None

    def register_resource(self, resource: t.Any) -> None:
        if resource not in self._resources:
            self._resources.append(resource)

    def unregister_resource(self, resource: t.Any) -> None:
        if resource in self._resources:
            self._resources.remove(resource)

    async def cleanup_resource(self, resource: t.Any) -> None:
        """Close a single resource using the first close-like method it has."""
        if resource is None:
            return
        for method_name in _CLOSE_METHODS:
            method = getattr(resource, method_name, None)
            if method is None:
                continue
            result = method()
            if asyncio.iscoroutine(result):
                await result
            logger.debug(f"Cleaned up {type(resource).__name__} using {method_name}()")
            return

    async def cleanup(self) -> None:
        """Close all registered resources, newest first."""
        if self._cleanup_lock is None:
            self._cleanup_lock = asyncio.Lock()

        async with self._cleanup_lock:
            if self._cleaned_up:
                return

            errors = []
            for resource in reversed(self._resources.copy()):
                try:
                    await self.cleanup_resource(resource)
                except Exception as e:
                    errors.append(f"{type(resource).__name__}: {e}")

            self._resources.clear()
            self._cleaned_up = True

            if errors:
                logger.warning(f"Resource cleanup errors: {'; '.join(errors)}")

    async def __aenter__(self) -> t.Self:
        return self

    async def __aexit__(self, exc_type: t.Any, exc_val: t.Any, exc_tb: t.Any) -> None:
        await self.cleanup()
