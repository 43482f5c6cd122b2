"""Read game bundle archives, decode data tables and export images, fonts and gem data."""

__version__ = "0.1.0"