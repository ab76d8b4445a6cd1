"""kendotree - first-stage tree generator for kendo championships."""

__version__ = "0.1.0"
