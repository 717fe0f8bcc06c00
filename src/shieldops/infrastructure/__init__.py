"""Infrastructure adapters: logging configuration and the remote content provider."""
