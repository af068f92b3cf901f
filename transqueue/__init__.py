"""
transqueue - queue-backed translation of ARB source strings.

Requests are accepted over HTTP, queued as tasks, and translated key by key
by a background engine that never asks the provider twice for a cached
(key, language) pair.
"""

__version__ = "0.1.0"
