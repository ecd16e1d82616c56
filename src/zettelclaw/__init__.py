"""zettelclaw: sweeps agent session transcripts into an Obsidian vault."""

__version__ = "0.3.0"
