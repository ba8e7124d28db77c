"""local-coder: a terminal coding assistant backed by a chain of local Ollama models."""

__version__ = "0.1.0"
