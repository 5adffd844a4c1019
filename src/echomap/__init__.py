"""
Echomap - geotagged emotional memories, discovery and echoes.

Package structure:
- core: Config, logging, shared result type, errors
- memory: Memory model and persistence (SQLite + in-memory)
- discovery: Visibility and proximity filtering
- unlock: Unlock engine (echoes)
- auth: Identity resolution from bearer credentials
- service: Request/response boundary
"""

__version__ = "0.1.0"
