"""HTTP service for queryrunner."""
