"""
Contribution review service.

Contribution submissions with receipts, a review state machine
(pending -> under_review -> approved/rejected), idempotent point crediting,
and per-principal admission control behind a FastAPI server.
"""

__version__ = "0.1.0"
