"""
Role and admin-only action definitions.

Two roles exist. ADMIN may do everything. PERSONNEL may do everything
except the actions listed in ADMIN_ONLY_ACTIONS, and only sees the sales,
transactions and activity entries it created.
"""

# =============================================================================
# ROLES
# =============================================================================

ROLE_ADMIN = "ADMIN"
ROLE_PERSONNEL = "PERSONNEL"

ROLES = (ROLE_ADMIN, ROLE_PERSONNEL)


# =============================================================================
# ADMIN-ONLY ACTIONS
# =============================================================================

# Each action is defined as: (code, description)
ADMIN_ONLY_ACTION_DEFINITIONS = [
    ("ARCHIVE_PRODUCT", "Archive (soft delete) a product"),
    ("DELETE_CUSTOMER", "Delete a customer record"),
    ("ADJUST_BALANCE", "Manually add debt or credit to a customer balance"),
    ("EDIT_SALE", "Fully edit an existing sale"),
    ("RESET_DELIVERY", "Move a delivered sale back to pending delivery"),
    ("APPROVE_TASK", "Approve a task waiting for approval"),
    ("REJECT_TASK", "Reject a task waiting for approval"),
    ("COMPLETE_TASK", "Complete a task directly"),
    ("REOPEN_TASK", "Reopen a completed task"),
    ("DELETE_TASK", "Delete a task"),
    ("UPDATE_SETTINGS", "Change shared settings lists"),
    ("MANAGE_COSTS", "View and edit product cost sheets"),
    ("MANAGE_USERS", "Create, list and delete user accounts"),
    ("VIEW_ACTIVITY_ALL", "Read every user's activity"),
    ("RECONCILE_LEDGER", "Recompute customer balances from balance events"),
]

ADMIN_ONLY_ACTIONS = frozenset(code for code, _ in ADMIN_ONLY_ACTION_DEFINITIONS)
