"""Photisnadi Sync — bidirectional sync of tasks, projects and rituals with Supabase."""

__version__ = "0.1.0"
