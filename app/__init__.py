"""HTTP layer for the engagement engine: routes, request models, middleware and error handlers."""
