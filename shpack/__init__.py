"""shpack.

A small build utility that packages a directory of shell scripts into a single
self-extracting executable.
"""

__all__: list[str] = ["__version__"]

__version__: str = "1.0.2"
