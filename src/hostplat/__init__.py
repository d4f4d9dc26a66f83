"""Host OS family and architecture detection."""
