"""
Tracking client

Collects page-level observations and delivers them to the tracking endpoints:
- storage.py - session token stores with sliding expiry
- delivery.py - single-flight FIFO queue with bounded retries
- client.py - httpx client for /api/analytics/track
- page.py - per-page state machine (scroll milestones, engagement, bounce,
  section visibility, performance coalescing)
"""

from .client import TrackingClient
from .delivery import TrackingQueue
from .page import PageTracker
from .storage import FileTokenStore, MemoryTokenStore, TokenStore

__all__ = [
    'TrackingClient',
    'TrackingQueue',
    'PageTracker',
    'TokenStore',
    'MemoryTokenStore',
    'FileTokenStore',
]

__version__ = '1.0.0'
