from .tools import TOOLS, ToolHandler, ToolResponse

__all__ = ["TOOLS", "ToolHandler", "ToolResponse"]
