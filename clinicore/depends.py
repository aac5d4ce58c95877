import typing as t
from bevy import get_container


@t.runtime_checkable
class DependsProtocol(t.Protocol):
    @staticmethod
    def set(class_: t.Any, instance: t.Any = None) -> t.Any: ...
    @staticmethod
    def get_sync(category: t.Any) -> t.Any: ...
    async def get(self, category: t.Any) -> t.Any: ...


class Depends:
    """Thin registry over the bevy container.

    Components receive their collaborators through constructor arguments;
    the registry only supplies process-wide defaults (config, logger) when
    a caller did not pass one explicitly.
    """

    @staticmethod
    def set(class_: t.Any, instance: t.Any = None) -> t.Any:
        """Register a class/instance in the dependency container.

        Returns the instance that was registered.
        """
        if instance is None:
            instance = class_()
        get_container().add(class_, instance)
        return instance

    @staticmethod
    def get_sync(category: t.Any) -> t.Any:
        """Get a registered dependency instance.

        Raises:
            RuntimeError: if nothing usable is registered for ``category``
        """
        result = get_container().get(category)
        if isinstance(result, tuple):
            if len(result) == 1:
                return result[0]
            name = getattr(category, "__name__", str(category))
            msg = f"Dependency '{name}' not found in container"
            raise RuntimeError(msg)
        return result

    async def get(self, category: t.Any) -> t.Any:
        return self.get_sync(category)


depends = Depends()

__all__ = ["Depends", "DependsProtocol", "depends", "get_container"]
