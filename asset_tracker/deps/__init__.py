# Request-scoped FastAPI dependencies (authentication).
