"""Shared HTTP session."""
import threading
from typing import Optional

import requests

_session: Optional[requests.Session] = None
_session_lock = threading.Lock()


def get_session() -> requests.Session:
    """Return a shared requests.Session for connection pooling."""
    global _session
    if _session is None:
        with _session_lock:
            if _session is None:
                s = requests.Session()
                adapter = requests.adapters.HTTPAdapter(
                    pool_connections=10,
                    pool_maxsize=10,
                    max_retries=0,  # callers handle retries themselves
                )
                s.mount("https://", adapter)
                s.mount("http://", adapter)
                _session = s
    return _session
