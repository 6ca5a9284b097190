"""mergewarn -- see who else is editing your lines before you merge."""

__version__ = "0.3.0"
