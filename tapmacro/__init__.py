"""tapmacro: template-driven tap/swipe macros for the desktop."""

__version__ = "0.3.0"
