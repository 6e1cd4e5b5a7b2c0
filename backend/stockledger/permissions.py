# Overview: Capability and operation definitions for the access policy.
# Each capability is defined as: (code, flag attribute, name, description)
# Each operation is defined as: (code, required capability, description)

"""
Access policy, table-driven.

Accounts carry four boolean flags. Each flag grants one capability, and
ADMINISTER implies every other capability. Operations name exactly one
required capability; a caller may perform an operation when the capability
is in their effective (expanded) capability set.
"""

from __future__ import annotations

from typing import Iterable

from .errors import PermissionDeniedError


ADMINISTER = "ADMINISTER"
DEFINE_PRODUCTS = "DEFINE_PRODUCTS"
VIEW_REPORTS = "VIEW_REPORTS"
MANAGE_INVENTORY = "MANAGE_INVENTORY"


CAPABILITY_DEFINITIONS = [
    (
        ADMINISTER,
        "is_admin",
        "Administer",
        "Manage accounts; implies every other capability",
    ),
    (
        DEFINE_PRODUCTS,
        "can_add_product",
        "Define Products",
        "Create, rename and delete products",
    ),
    (
        VIEW_REPORTS,
        "can_view_reports",
        "View Reports",
        "View stock reports and download exports",
    ),
    (
        MANAGE_INVENTORY,
        "can_manage_inventory",
        "Manage Inventory",
        "Record and delete stock movements",
    ),
]

CAPABILITY_FLAGS = {code: flag for code, flag, _name, _desc in CAPABILITY_DEFINITIONS}

ALL_CAPABILITIES = frozenset(CAPABILITY_FLAGS)

# capability -> capabilities it grants in addition to itself
IMPLIED_CAPABILITIES = {
    ADMINISTER: ALL_CAPABILITIES,
}


OPERATION_DEFINITIONS = [
    ("CREATE_PRODUCT", DEFINE_PRODUCTS, "Define a new product"),
    ("UPDATE_PRODUCT", DEFINE_PRODUCTS, "Rename or recategorize a product"),
    ("DELETE_PRODUCT", DEFINE_PRODUCTS, "Delete a product and its stock history"),
    ("CREATE_MOVEMENT", MANAGE_INVENTORY, "Record a stock movement"),
    ("DELETE_MOVEMENT", MANAGE_INVENTORY, "Delete (reverse) a stock movement"),
    ("VIEW_REPORTS", VIEW_REPORTS, "View stock reports"),
    ("EXPORT_REPORTS", VIEW_REPORTS, "Download stock reports as spreadsheets"),
    ("MANAGE_USERS", ADMINISTER, "List, create, update and delete accounts"),
]

OPERATION_REQUIREMENTS = {code: capability for code, capability, _desc in OPERATION_DEFINITIONS}


def expand_capabilities(capabilities: Iterable[str]) -> frozenset[str]:
    """Add every capability implied by the given ones."""
    expanded = set(capabilities)
    for code in list(expanded):
        expanded |= IMPLIED_CAPABILITIES.get(code, frozenset())
    return frozenset(expanded)


def granted_capabilities(account) -> frozenset[str]:
    """Capabilities granted directly by an account's flags (no expansion)."""
    return frozenset(
        code for code, flag in CAPABILITY_FLAGS.items() if bool(getattr(account, flag, False))
    )


def effective_capabilities(account) -> frozenset[str]:
    return expand_capabilities(granted_capabilities(account))


def required_capability(operation: str) -> str:
    try:
        return OPERATION_REQUIREMENTS[operation]
    except KeyError:
        raise ValueError(f"Unknown operation: {operation}") from None


def is_allowed(account, operation: str) -> bool:
    if account is None:
        return False
    return required_capability(operation) in effective_capabilities(account)


def require_operation(account, operation: str) -> None:
    """Raise PermissionDeniedError unless the account may perform the operation."""
    if not is_allowed(account, operation):
        raise PermissionDeniedError(
            f"Requires {required_capability(operation)} capability",
            operation=operation,
        )
