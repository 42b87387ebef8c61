"""Redis connectivity shared by the rate limiter and health checks."""
