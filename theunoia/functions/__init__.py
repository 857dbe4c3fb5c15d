"""Server-side HTTP functions deployed next to the Supabase project."""
