"""Application infrastructure shared by all routes."""
