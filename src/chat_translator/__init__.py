"""Chat translator.

Message-triggered Japanese / Chinese / English translation for chat bots:
detect the language of a message, fan it out to one completion-API call per
target language under a shared concurrency gate, and return one outcome
per target.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

# ---------------------------------------------------------------------------
# Package version, read from pyproject.toml via importlib.metadata.
#
# When the package is imported without being installed we fall back to
# "0.0.0-dev" so that the CLI can still start.
# ---------------------------------------------------------------------------
try:
    __version__: str = version("chat-translator")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
