__version__ = "0.1.0"

from subsidy_paths.core import (
    BaseAdapter,
    StatusDict,
    StatusTuple,
    Strategy,
)

__all__ = [
    "__version__",
    "BaseAdapter",
    "Strategy",
    "StatusDict",
    "StatusTuple",
]
