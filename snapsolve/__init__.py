"""snapsolve: screenshot capture and a cancellable multi-provider LLM pipeline."""

__version__ = "0.1.0"
