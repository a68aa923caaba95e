"""Student election backend: election lifecycle scheduling and face verification."""

__version__ = "0.1.0"
