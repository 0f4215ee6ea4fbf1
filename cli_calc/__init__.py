"""cli-calc: a command-line calculator that remembers its results."""

__version__ = "2.0.0"
