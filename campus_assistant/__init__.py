"""Campus assistant client: streaming chat session engine."""

__version__ = "0.1.0"
