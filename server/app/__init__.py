"""HTTP application layer: routers mounted by :mod:`server.main`."""
