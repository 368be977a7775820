"""
Clients for services the chain gateway talks to
"""

from .resources import HttpResourceResolver

__all__ = ["HttpResourceResolver"]
