"""
garch - explore the evolution of a file or line range through git history
"""

__version__ = "0.3.0"
