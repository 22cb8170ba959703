"""Expose Celery tasks so autodiscovery loads them."""

from importlib import import_module

_TASK_MODULES = ["scheduled"]

__all__: list[str] = []

for module in _TASK_MODULES:
    import_module(f"{__name__}.{module}")
    __all__.append(module)
