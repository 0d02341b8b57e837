# abac.py
# Attribute-based access checks: account status, role and resource ownership.

OWNER_ACTIONS = ("upload", "read", "delete", "update")
ADMIN_ACTIONS = ("read_all_files", "manage_users", "view_analytics")
ALL_ACTIONS = OWNER_ACTIONS + ADMIN_ACTIONS


# action: 'upload', 'read', 'delete', 'update', 'manage_users', ...
# resource: optional dict with resource attributes like {'owner_id': user_id}
def validate_permissions(user, action, resource=None):
    if user is None or not user.is_authenticated:
        return False

    # Inactive and suspended accounts can authenticate but not act
    if not user.is_active_account:
        return False

    if action not in ALL_ACTIONS:
        return False

    if user.is_admin:
        return True

    if action in ADMIN_ACTIONS:
        return False

    # Ownership check for resources that belong to a user
    if resource and "owner_id" in resource:
        return resource["owner_id"] == user.pk

    return True


def get_user_permissions(user):
    """
    Get all permissions for a user as a dictionary.

    Args:
        user: User instance

    Returns:
        dict: Dictionary of user permissions
    """
    return {f"can_{action}": validate_permissions(user, action) for action in ALL_ACTIONS}
