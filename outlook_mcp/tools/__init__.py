"""MCP tool handlers backed by the token services."""

from .auth import PARAMETER_ERROR, AuthTools

__all__ = ["AuthTools", "PARAMETER_ERROR"]
