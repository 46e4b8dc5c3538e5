"""Document intelligence pipeline for legal matters."""

__version__ = "0.1.0"
