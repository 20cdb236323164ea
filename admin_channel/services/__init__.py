"""External collaborators: Supabase stores, analytics, notifications, Telegram."""
