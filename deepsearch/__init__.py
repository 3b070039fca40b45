"""deepsearch — web content acquisition: page extraction and bounded deep search."""

__version__ = "1.6.1"
