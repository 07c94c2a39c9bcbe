"""Keep a local Markdown collection convergent with a GitHub repository."""

__version__ = "0.1.0"
