"""Upload, confirmation and statistics API."""
