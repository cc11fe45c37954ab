"""HTTP server for the roadmap board."""
