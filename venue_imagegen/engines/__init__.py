from .factory import ModelFactory

__all__ = ["ModelFactory"]
