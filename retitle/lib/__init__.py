from retitle.lib.hooks import hooks, action, filter
from retitle.lib.slugs import normalize

__all__ = [
    "hooks",
    "action",
    "filter",
    "normalize",
]
