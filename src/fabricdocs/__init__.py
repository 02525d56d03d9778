"""fabricdocs - Turn transcripts into document sets with fabric patterns."""

__version__ = "0.1.0"
