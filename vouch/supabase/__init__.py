"""
Hosted backend access layer.

Responsibilities:
- Hold the Supabase project URL and anon key.
- Issue PostgREST reads, inserts and RPC calls over HTTP.
- Turn every transport or HTTP failure into a single ``SupabaseError``.
"""
