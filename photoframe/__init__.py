"""photoframe: serves a rotating photo album to 7-colour e-paper frames."""

__version__ = "1.0.0"
__author__ = "photoframe contributors"
