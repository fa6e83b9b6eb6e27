"""offerdesk – P2P crypto offer board and acceptance flow."""

__version__ = "0.1.0"
