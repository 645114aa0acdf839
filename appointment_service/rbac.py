ADMIN_ROLE = "admin"


def _roles(payload: dict) -> set[str]:
    token_roles = payload.get("roles")
    if not isinstance(token_roles, list):
        return set()
    return {str(r).lower() for r in token_roles}


def is_admin(payload: dict) -> bool:
    return ADMIN_ROLE in _roles(payload)


def can_manage_store(payload: dict, store_id: str) -> bool:
    """Platform admins manage every store, owners only the one in their token."""
    if not payload:
        return False
    if is_admin(payload):
        return True
    owned = payload.get("store_id")
    return owned is not None and str(owned) == str(store_id)
