"""Central enum-like definitions to avoid typos in role/status strings.
Values are persisted and sent over the wire; never rename one silently.
"""
from __future__ import annotations
from typing import Dict, Tuple

ROLE_ADMIN = 'admin'
ROLE_TECHNICIAN = 'technician'
ROLE_CUSTOMER = 'customer'
ALL_ROLES: Tuple[str, ...] = (ROLE_ADMIN, ROLE_TECHNICIAN, ROLE_CUSTOMER)

# Route groups reused by several blueprints
STAFF = (ROLE_ADMIN, ROLE_TECHNICIAN)
EVERYONE = (ROLE_CUSTOMER, ROLE_TECHNICIAN, ROLE_ADMIN)

ALLOWED_IMAGE_TYPES: Dict[str, str] = {
    'image/jpeg': '.jpg',
    'image/jpg': '.jpg',
    'image/png': '.png',
    'image/webp': '.webp',
}
