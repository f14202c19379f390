"""Bank statement parsing: profiles, readers and per-bank parsers."""
