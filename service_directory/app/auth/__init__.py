"""
Authentication for the Directory Service.
"""

from .gate import AuthContext, JWTRequestGate

__all__ = ["AuthContext", "JWTRequestGate"]
