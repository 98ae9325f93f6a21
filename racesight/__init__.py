"""RaceSight - race-card analysis and competitor ranking."""

__version__ = "0.1.0"
