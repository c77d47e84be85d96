"""
API routers package
"""
from marketplace_trust.api import (
    system,
    trust
)

__all__ = [
    "system",
    "trust"
]
