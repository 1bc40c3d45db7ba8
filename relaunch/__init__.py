"""
relaunch: a development-time supervisor that restarts a child process
whenever its source file changes.
"""

__version__ = "0.1.0"
