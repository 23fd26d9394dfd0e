"""WebGL host: static delivery for Unity WebGL builds."""

__version__ = "1.0.0"
