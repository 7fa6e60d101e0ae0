"""
Message persistence.
"""

from .archive import MessageArchive

__all__ = ['MessageArchive']
