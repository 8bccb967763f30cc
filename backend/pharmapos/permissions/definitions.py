# Overview: Default role → permission grants.
# Each grant is defined as: (resource, actions, conditions)
# conditions keys: branch_scoped, own_data_only, numeric_limit

from .categories import Role, Resource, Action


_BRANCH = {"branch_scoped": True}
_GLOBAL = {"branch_scoped": False}
_NONE = ()


# -- PRODUCT OWNER --
# Runs the POS product itself; no day-to-day pharmacy operations.

PRODUCT_OWNER_PERMISSIONS = [
    (Resource.USERS, (Action.MANAGE,), _GLOBAL),
    (Resource.BRANCHES, (Action.MANAGE,), _GLOBAL),
    (Resource.SETTINGS, (Action.MANAGE,), _GLOBAL),
    (Resource.INTEGRATIONS, (Action.MANAGE,), _GLOBAL),
    (Resource.BACKUP, (Action.MANAGE,), _GLOBAL),
    (Resource.ANALYTICS, (Action.READ,), _GLOBAL),
    (Resource.BILLING, (Action.MANAGE,), _GLOBAL),

    (Resource.PRODUCTS, _NONE, {}),
    (Resource.SALES, _NONE, {}),
    (Resource.PRESCRIPTIONS, _NONE, {}),
]


# -- SUPER ADMIN --
# Full access across every branch of their pharmacy.

SUPER_ADMIN_PERMISSIONS = [
    (Resource.USERS, (Action.MANAGE,), _BRANCH),
    (Resource.EMPLOYEES, (Action.MANAGE,), _BRANCH),
    (Resource.BRANCHES, (Action.MANAGE,), _BRANCH),
    (Resource.PRODUCTS, (Action.MANAGE,), _BRANCH),
    (Resource.CATEGORIES, (Action.MANAGE,), _BRANCH),
    (Resource.SUPPLIERS, (Action.MANAGE,), _BRANCH),
    (Resource.SALES, (Action.MANAGE,), _BRANCH),
    (Resource.REPORTS, (Action.MANAGE,), _BRANCH),
    (Resource.DASHBOARD, (Action.READ,), _BRANCH),
    (Resource.SETTINGS, (Action.MANAGE,), _BRANCH),
    (Resource.INTEGRATIONS, (Action.MANAGE,), _BRANCH),
    (Resource.BACKUP, (Action.MANAGE,), _BRANCH),
    (Resource.COMMISSIONS, (Action.MANAGE,), _BRANCH),
    (Resource.CUSTOMERS, (Action.MANAGE,), _BRANCH),
    (Resource.REFUNDS, (Action.MANAGE,), _BRANCH),
]


# -- MANAGER --
# Runs one branch. Cannot change global settings.

MANAGER_PERMISSIONS = [
    (Resource.USERS, (Action.CREATE, Action.READ, Action.UPDATE), _BRANCH),
    (Resource.EMPLOYEES, (Action.MANAGE,), _BRANCH),
    (Resource.PRODUCTS, (Action.MANAGE,), _BRANCH),
    (Resource.CATEGORIES, (Action.MANAGE,), _BRANCH),
    (Resource.SUPPLIERS, (Action.MANAGE,), _BRANCH),
    (Resource.SALES, (Action.READ, Action.UPDATE), _BRANCH),
    (Resource.REPORTS, (Action.READ, Action.EXPORT), _BRANCH),
    (Resource.DASHBOARD, (Action.READ,), _BRANCH),
    (Resource.REFUNDS, (Action.APPROVE, Action.REJECT), {"branch_scoped": True, "numeric_limit": 1000}),
    (Resource.CUSTOMERS, (Action.MANAGE,), _BRANCH),
    (Resource.COMMISSIONS, (Action.READ,), _BRANCH),

    (Resource.SETTINGS, (Action.READ,), _BRANCH),
    (Resource.INTEGRATIONS, _NONE, {}),
    (Resource.BACKUP, _NONE, {}),
]


# -- PHARMACIST --
# Keeps prescription and medicine sales compliant.

PHARMACIST_PERMISSIONS = [
    (Resource.PRODUCTS, (Action.READ, Action.UPDATE), _BRANCH),
    (Resource.PRESCRIPTIONS, (Action.MANAGE,), _BRANCH),
    (Resource.CUSTOMERS, (Action.READ, Action.UPDATE), _BRANCH),
    (Resource.MEDICATION_HISTORY, (Action.READ,), _BRANCH),
    (Resource.SALES, (Action.READ, Action.UPDATE), _BRANCH),
    (Resource.STOCK_MOVEMENTS, (Action.READ, Action.UPDATE), _BRANCH),
    (Resource.DASHBOARD, (Action.READ,), _BRANCH),

    (Resource.REPORTS, (Action.READ,), _BRANCH),
    (Resource.CATEGORIES, (Action.READ,), _BRANCH),

    (Resource.USERS, _NONE, {}),
    (Resource.EMPLOYEES, _NONE, {}),
    (Resource.COMMISSIONS, _NONE, {}),
    (Resource.SETTINGS, _NONE, {}),
]


# -- CASHIER --
# Checkout and front-counter sales.

CASHIER_PERMISSIONS = [
    (Resource.SALES, (Action.CREATE, Action.READ), _BRANCH),
    (Resource.RECEIPTS, (Action.CREATE, Action.READ), _BRANCH),
    (Resource.REFUNDS, (Action.CREATE, Action.READ), {"branch_scoped": True, "numeric_limit": 100}),
    (Resource.PRODUCTS, (Action.READ,), _BRANCH),
    (Resource.CUSTOMERS, (Action.READ, Action.CREATE, Action.UPDATE), _BRANCH),
    (Resource.CATEGORIES, (Action.READ,), _BRANCH),
    (Resource.DASHBOARD, (Action.READ,), _BRANCH),

    (Resource.REPORTS, (Action.READ,), {"branch_scoped": True, "own_data_only": True}),

    (Resource.USERS, _NONE, {}),
    (Resource.EMPLOYEES, _NONE, {}),
    (Resource.SETTINGS, _NONE, {}),
    (Resource.SUPPLIERS, _NONE, {}),
    (Resource.STOCK_MOVEMENTS, _NONE, {}),
    (Resource.COMMISSIONS, _NONE, {}),
]


ROLE_DESCRIPTIONS = {
    Role.PRODUCT_OWNER: "Product Owner / Subscription Admin - Full control of the POS product itself",
    Role.SUPER_ADMIN: "Super Admin - Full access across all branches of their pharmacy",
    Role.MANAGER: "Manager - Manages one store/branch operations",
    Role.PHARMACIST: "Pharmacist - Ensures prescriptions and medicine sales are compliant",
    Role.CASHIER: "Cashier - Handles customer checkout and frontend sales",
}


DEFAULT_ROLE_PERMISSIONS = {
    Role.PRODUCT_OWNER: PRODUCT_OWNER_PERMISSIONS,
    Role.SUPER_ADMIN: SUPER_ADMIN_PERMISSIONS,
    Role.MANAGER: MANAGER_PERMISSIONS,
    Role.PHARMACIST: PHARMACIST_PERMISSIONS,
    Role.CASHIER: CASHIER_PERMISSIONS,
}
