# Services package init
"""
CardLink Backend — Services Layer
===================================

Service Inventory:
    - ClientService:  client lifecycle (create, update, vCard, PDF, status, reads, export)
    - MediaService:   object-storage upload and fetch-with-retry, photo validation
    - PdfService:     reportlab rendering behind the capacity-1 PdfRenderGate
    - EmailService:   SMTP notifications, never raises
    - AuditService:   best-effort audit writes and listing
    - slug_service, vcard_encoder, qr_service: pure helpers

Each service module exposes a singleton; ClientService takes its
collaborators as constructor arguments so tests can wire in fakes.
"""
