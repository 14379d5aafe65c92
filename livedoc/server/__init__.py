"""HTTP surface: static snapshot serving and the reload socket."""

from livedoc.server.app import create_app

__all__ = ["create_app"]
