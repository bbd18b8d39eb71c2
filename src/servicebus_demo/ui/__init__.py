"""UI package for the Service Bus demo."""

from .window import MainWindow

__all__ = ["MainWindow"]
