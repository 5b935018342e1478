from importlib import import_module

modules = [
    'instruments',
    'templates',
    'maintenance',
    'analytics',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
