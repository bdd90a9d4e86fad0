"""Tools module -- registry plus the block utilization analytics tools."""

from lumen.tools.registry import Executor, ToolRegistry
from lumen.tools.block_util import register_block_util_tools

__all__ = [
    "Executor",
    "ToolRegistry",
    "register_block_util_tools",
]
