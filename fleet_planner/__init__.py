"""Task allocation and schedule synthesis for grid-world warehouse robots."""

__version__ = "0.1.0"
