# Routes package init
"""
CardLink Backend — API Routes Package
=======================================

Route Inventory:
    - clients.py: /api/clients (create, listings, export, detail, update,
                  vCard, PDF, status, delete)
    - public.py:  GET /api/public/profiles/{slug_or_id}, GET /vcard/{id},
                  POST /api/upload-photo
    - logs.py:    GET /api/logs
    - health.py:  GET /health

Routes stay thin: extract request data, call ClientService, wrap the result
in the response envelope. Business rules live in the services.
"""
