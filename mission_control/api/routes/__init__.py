"""REST routes for Mission Control."""
