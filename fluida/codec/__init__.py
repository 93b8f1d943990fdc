"""
Wire codecs: cells, dictionaries and message bodies.

`messages` depends on `fluida.core` and is imported by module path
(`from fluida.codec import messages`) rather than re-exported here.
"""

from .cell import Address, Builder, Cell, CellError, Slice, begin_cell
from .hashmap import build_dict, load_dict, parse_dict, store_dict

__all__ = [
    "Address",
    "Builder",
    "Cell",
    "CellError",
    "Slice",
    "begin_cell",
    "build_dict",
    "load_dict",
    "parse_dict",
    "store_dict",
]
