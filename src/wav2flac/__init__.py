"""Batch WAV/AIFF to FLAC conversion with trash disposal of the originals."""

__version__ = "0.1.0"
