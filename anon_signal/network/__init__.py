"""Network-facing layers of anon_signal."""
