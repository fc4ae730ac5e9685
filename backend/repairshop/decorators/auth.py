from functools import wraps
from typing import Callable, Optional
from flask import g
from flask_jwt_extended import verify_jwt_in_request
from repairshop.services.policy import Resource, current_identity, enforce


def require_roles(*roles: str, resource: Optional[Callable[..., Resource]] = None):
    """Verify the bearer token and run the authorization policy before the view.

    ``resource`` receives the view kwargs and returns the Resource the route acts
    on; it is expected to abort(404) itself when the target does not exist.
    """
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            target = resource(**kwargs) if resource else None
            g.identity = enforce(current_identity(), roles, target)
            return fn(*args, **kwargs)
        return wrapper
    return outer
