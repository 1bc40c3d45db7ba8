"""
The Supervisor package.
Manages the lifecycle of the single child process under development.

This package contains the Supervisor class and its process helpers, which
together handle starting, killing, restarting and reaping the child.
"""
from .supervisor import IllegalStateError, Supervisor

__all__ = ['IllegalStateError', 'Supervisor']
