"""
API module exposing the platform over REST.
"""

from .rest_api import PeerEvalRestAPI

__all__ = [
    "PeerEvalRestAPI",
]
