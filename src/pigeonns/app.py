"""Module exposing a ready-made FastAPI app instance for uvicorn.

`uvicorn pigeonns.app:app` runs the HTTP gateway with a default resolver.
The resolver only opens its multicast socket when the app starts up, so
importing this module has no network side effects.
"""

from __future__ import annotations

from .resolver import MdnsResolver
from .webserver import create_app

resolver = MdnsResolver()
app = create_app(resolver, manage_resolver=True)
