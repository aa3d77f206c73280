"""
Fetch module: the start/cancel protocol and its HTTP routes.
"""

from .models import FetchCommandResult, StreamEvent
from .services import FetchService
from .routes import create_fetch_routes
from .factory import create_fetch_module

__all__ = ['FetchCommandResult', 'StreamEvent', 'FetchService', 'create_fetch_routes', 'create_fetch_module']
