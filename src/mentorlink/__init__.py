"""MentorLink request engines: relationship resolution, inbox aggregation and profile decryption."""

__version__ = "0.1.0"
