"""Utility functions for request parsing and tenant lookup"""
from .models import Organization


class InvalidParameter(ValueError):
    """Raised when a query parameter cannot be parsed"""

    def __init__(self, name, value):
        self.name = name
        self.value = value
        super().__init__(f"Invalid value for '{name}': {value!r}")


def parse_int_param(params, name, default, min_value=None, max_value=None):
    """
    Parse an integer query parameter

    Args:
        params: QueryDict (request.query_params)
        name: Parameter name
        default: Value used when the parameter is absent or blank
        min_value / max_value: Optional bounds, out-of-range values are clamped

    Raises:
        InvalidParameter: when the value is not an integer
    """
    raw = params.get(name, None)
    if raw is None or str(raw).strip() == '':
        value = default
    else:
        try:
            value = int(str(raw).strip())
        except (TypeError, ValueError):
            raise InvalidParameter(name, raw)

    if min_value is not None:
        value = max(min_value, value)
    if max_value is not None:
        value = min(max_value, value)
    return value


def get_organization(organization_id, user=None):
    """
    Return the active organization with this id, or None

    When a user is given, organizations they are not a member of are
    treated as missing (staff users see every organization).
    """
    queryset = Organization.objects.filter(is_active=True)
    if user is not None and not user.is_staff:
        queryset = queryset.filter(members=user)
    try:
        return queryset.get(pk=int(organization_id))
    except (Organization.DoesNotExist, TypeError, ValueError):
        return None
