# Overview: Role, resource and action constants for the permission table.


class Role:
    """Roles a user can hold. Exactly one per user."""
    PRODUCT_OWNER = "PRODUCT_OWNER"
    SUPER_ADMIN = "SUPER_ADMIN"
    MANAGER = "MANAGER"
    PHARMACIST = "PHARMACIST"
    CASHIER = "CASHIER"

    ALL = (PRODUCT_OWNER, SUPER_ADMIN, MANAGER, PHARMACIST, CASHIER)

    # Not subject to branch scoping on any resource
    BRANCH_EXEMPT = frozenset({PRODUCT_OWNER, SUPER_ADMIN})


class Resource:
    # User management
    USERS = "users"
    EMPLOYEES = "employees"
    BRANCHES = "branches"

    # Inventory
    PRODUCTS = "products"
    CATEGORIES = "categories"
    SUPPLIERS = "suppliers"
    STOCK_MOVEMENTS = "stock_movements"

    # Sales & POS
    SALES = "sales"
    RECEIPTS = "receipts"
    REFUNDS = "refunds"

    # Reports & analytics
    REPORTS = "reports"
    DASHBOARD = "dashboard"
    ANALYTICS = "analytics"

    # System settings
    SETTINGS = "settings"
    INTEGRATIONS = "integrations"
    BACKUP = "backup"

    # Pharmacy specific
    PRESCRIPTIONS = "prescriptions"
    CUSTOMERS = "customers"
    MEDICATION_HISTORY = "medication_history"

    # Financial
    COMMISSIONS = "commissions"
    PAYMENTS = "payments"
    BILLING = "billing"

    ALL = (
        USERS, EMPLOYEES, BRANCHES,
        PRODUCTS, CATEGORIES, SUPPLIERS, STOCK_MOVEMENTS,
        SALES, RECEIPTS, REFUNDS,
        REPORTS, DASHBOARD, ANALYTICS,
        SETTINGS, INTEGRATIONS, BACKUP,
        PRESCRIPTIONS, CUSTOMERS, MEDICATION_HISTORY,
        COMMISSIONS, PAYMENTS, BILLING,
    )


class Action:
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"
    REJECT = "reject"
    EXPORT = "export"
    IMPORT = "import"
    MANAGE = "manage"  # Full control; routes accept it alongside the specific action

    ALL = (CREATE, READ, UPDATE, DELETE, APPROVE, REJECT, EXPORT, IMPORT, MANAGE)
