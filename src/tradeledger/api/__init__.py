"""HTTP API for schedule, rule, operation and account endpoints."""
