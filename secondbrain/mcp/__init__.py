from secondbrain.mcp.server import build_mcp, build_mcp_app, build_tools, tool_error_handler

__all__ = [
    "build_mcp",
    "build_mcp_app",
    "build_tools",
    "tool_error_handler",
]
