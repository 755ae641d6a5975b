"""Embedding providers: Ollama, OpenAI and in-process sentence-transformers."""
