"""
Posts and threaded comments service.

Storage backends live in postcomments.storage; the GraphQL/HTTP surface is
assembled in postcomments.app.
"""

__version__ = "0.1.0"
