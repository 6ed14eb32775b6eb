from subsidy_paths.core.adapters.BaseAdapter import BaseAdapter
from subsidy_paths.core.strategies.Strategy import (
    StatusDict,
    StatusTuple,
    Strategy,
)

__all__ = [
    "Strategy",
    "StatusDict",
    "StatusTuple",
    "BaseAdapter",
]
