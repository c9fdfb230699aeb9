"""healthgate — cached aggregate health endpoint for a running service."""
