"""Collaborator interfaces and the Supabase REST store."""
