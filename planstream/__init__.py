"""planstream - streaming plan proposal client."""

__version__ = "0.1.0"
