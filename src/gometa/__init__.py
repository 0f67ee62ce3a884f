"""gometa - structured metadata extraction from Go source code."""

try:
    from importlib.metadata import version

    __version__ = version("gometa")
except Exception:
    __version__ = "0.0.0.dev0+local"  # Fallback for development
