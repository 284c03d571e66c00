"""
Permission management feature module.

Grants of one operation on one tenant, with the users they delegate it to,
plus the FastAPI dependencies that gate every tenant-scoped route.
"""
