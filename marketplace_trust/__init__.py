"""
Marketplace Trust Engine

Behavioral reliability scoring for requesters and fulfillers.
"""
__version__ = "1.0.0"
