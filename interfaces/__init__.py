"""
Interfaces Package.

Abstract contracts for collaborators implemented outside this package.
"""

from .recording import ILogRecording

__all__ = ['ILogRecording']
