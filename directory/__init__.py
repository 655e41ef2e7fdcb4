"""Core (UI-agnostic) directory logic.

This package contains:
- the single-flight loader for the Google Maps script
- the data store and admin auth clients (Supabase REST)
- data normalization (rows -> pandas)
- filter normalization and page compute functions (JSON-serializable payloads)
- admin tooling: centre management, import, data quality, Google Places verification, geocoding
- map HTML for the embedded centre map
- chart helpers (Altair -> Vega-Lite spec dict)
"""
