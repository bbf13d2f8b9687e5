"""Storage backends: local embedded store and the Supabase database."""
