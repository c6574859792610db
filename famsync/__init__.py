"""famsync: offline-first household task sync core."""

__version__ = "0.1.0"
