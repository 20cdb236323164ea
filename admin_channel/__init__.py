"""Admin channel conversational routing engine.

Receives messages from business operators over Telegram/WhatsApp, resolves
their intent and drives the handler that answers them.
"""

__version__ = "0.1.0"
