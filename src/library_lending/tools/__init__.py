"""
MCP tools for the library lending server.

Every lending operation is exposed as a tool: an action invoked by clients
via ``tools/call``, with a JSON Schema derived from its pydantic request
model and a structured result or error.
"""

from .lending import LendingTools, error_response, success_response

__all__ = ["LendingTools", "error_response", "success_response"]
