"""HTTP layer: middleware gates, exception handlers and versioned routers."""
