# =============================================================================
# CRM-ADMIN
# Administrative action runner for the hosted CRM backend
# =============================================================================
"""
Operational tooling for the CRM backend (tables, auth accounts, storage).

One invocation performs one named action against the remote backend with the
service-role key, prints narration for the operator, and exits.

Usage:
    crm-admin --list
    crm-admin users.list --tenant medex
    crm-admin users.activate -p email=someone@example.com --execute
"""

__version__ = "1.0.0"
