"""A small TCP chat server and terminal client using length-prefixed JSON frames."""

__version__ = "0.1.0"