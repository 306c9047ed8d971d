# =============================================================================
# CRM-ADMIN Actions
# =============================================================================
"""
Named administrative actions.

Importing this package registers every action with the runner:

- records.*        generic table reads and writes
- users.*          user rows within a tenant
- tenant.purge     tenant-wide cleanup
- login-attempts.clear
- auth.*           auth accounts (identity admin API)
- storage.*        buckets and objects
- diag.*           read-only diagnostics
"""

from crm_admin.actions.runner import ACTIONS, ActionContext, ActionResult, action, list_actions, run_action
from crm_admin.actions import auth_users, diagnostics, records, storage, tenant, users  # noqa: F401

__all__ = ["ACTIONS", "ActionContext", "ActionResult", "action", "list_actions", "run_action"]
