# src/mentorlink/services/__init__.py
"""Service layer for the MentorLink engines."""

from .api_client import MentorshipApiClient, get_api_client
from .connections import ConnectionService
from .field_codec import FieldCodec
from .inbox import RequestInboxAggregator
from .profile_decryptor import ProfileDecryptor
from .relationship import RelationshipResolver
from .session import MentorshipSession

__all__ = [
    "MentorshipApiClient",
    "get_api_client",
    "ConnectionService",
    "FieldCodec",
    "RequestInboxAggregator",
    "ProfileDecryptor",
    "RelationshipResolver",
    "MentorshipSession",
]
