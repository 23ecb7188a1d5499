"""
Permission management feature module.

Implements Role-Based Access Control (RBAC) with roles held at organization
scope or on a single project. A user's effective permissions are the union of
both, and every protected route checks them on each request.
"""
