"""codescout - parallel, budgeted code retrieval for LLM context windows."""

__version__ = "0.1.0"
