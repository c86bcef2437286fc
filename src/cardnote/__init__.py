"""
cardnote - Card storage with inline card references and backlink synchronization.
This package implements the reference engine behind a card-based note-taking app:
cards embed ``[[Title]](label)`` references to other cards, and each resolved
reference is materialized as a backlink annotation stored in a reserved tag namespace.

The parser is synchronous; the synchronizers run on asyncio.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("cardnote")
except PackageNotFoundError:
    __version__ = "0.3.0"
