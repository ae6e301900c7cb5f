"""postdesk — local-first Markdown post editing synced through a Git host's content API."""

__version__ = "0.1.0"
