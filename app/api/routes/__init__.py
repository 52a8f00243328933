from . import generation, queue

__all__ = ["generation", "queue"]
