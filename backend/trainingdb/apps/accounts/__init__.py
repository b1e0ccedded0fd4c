# backend/trainingdb/apps/accounts/__init__.py
"""
Accounts app

Responsible for:
- Client tenants and their registered contacts
- Portal user accounts (ADMIN back office, CLIENT users bound to a tenant)
- Client employees, the people enrolled into course editions
- Public auth endpoints (login, current user)
"""
