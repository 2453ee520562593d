"""
payassist/tools

- registry.py: Tool, ToolContext, ToolOutcome, ToolRegistry
- banking_tools.py: the banking tools and build_banking_registry()
"""

from payassist.tools.banking_tools import build_banking_registry  # noqa: F401
from payassist.tools.registry import Tool, ToolContext, ToolOutcome, ToolRegistry  # noqa: F401
