"""
Adapters layer - Storage integrations (in-memory/JSON and Supabase).
"""

from .memory_store import InMemoryCalendarStore
from .supabase_store import SupabaseCalendarStore

__all__ = ["InMemoryCalendarStore", "SupabaseCalendarStore"]
