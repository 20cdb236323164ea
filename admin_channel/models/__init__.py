"""Models for the admin channel."""
