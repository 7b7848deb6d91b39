"""Board-to-board state exchange, framing and drive decisions for a two-board rover."""

__version__ = "0.1.0"
__all__ = ["types", "protocol", "decision", "link"]