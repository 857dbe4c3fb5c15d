"""Supabase reads and writes, one module per marketplace area."""
