"""a2ahost — an Agent-to-Agent delegation host. Plans, delegates, summarizes."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("a2ahost")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development
