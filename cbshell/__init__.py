"""
cbshell - a shell for working with one or more clusters at once.
"""

__version__ = "1.0.0"
