"""
Schemas module - Request/Response schemas for API endpoints.

Difference from models:
- Models: Internal data structures (what storage keeps)
- Schemas: API contract (what client sends/receives)
"""
