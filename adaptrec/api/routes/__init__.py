"""Route modules for the AdaptRec API."""
