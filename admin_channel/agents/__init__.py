"""Agents package for the admin channel."""

from admin_channel.agents.fast_matcher import (
    IntentMatch,
    match_fast_intent,
)

__all__ = [
    "IntentMatch",
    "match_fast_intent",
]
