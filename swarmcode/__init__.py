"""swarmcode: autonomous coding workers that write, run and fix their own code."""

__version__ = "0.1.0"
