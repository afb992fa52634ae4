__version__ = "1.0.0"

__author__ = "Storefront Engineering"


def get_version():
    return __version__


__all__ = [
    "__version__",
    "__author__",
    "get_version",
]
