"""HTTP API for the workspace assistant tool engine."""
