"""pagesync — incrementally republish generated documentation into a pages branch."""

__version__ = "0.1.0"
