"""Built-in transform nodes. Importing this package registers their type tags."""

from .drop_while import DropWhileNode
from .join import JoinNode
from .map import MapNode
from .merge import MergeNode
from .newest import NewestNode
from .select_keys import SelectKeysNode
from .to_time import ToTimeNode
from .where import VALID_OPS, WhereNode

__all__ = [
    "DropWhileNode",
    "JoinNode",
    "MapNode",
    "MergeNode",
    "NewestNode",
    "SelectKeysNode",
    "ToTimeNode",
    "WhereNode",
    "VALID_OPS",
]
