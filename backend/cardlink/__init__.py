"""
CardLink Backend — Application Package
========================================

Digital business-card service: public submissions, admin review, and
generation of vCards, QR codes and PDFs delivered by email.

Architecture:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, response envelope
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← lifecycle, media, PDF gate, audit
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
