"""
Collaborator contracts consumed by the calculations, the query filters, and the request-scoped fetch cache.
"""
