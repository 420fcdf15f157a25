"""
Shared route dependencies.

Authentication happens upstream; by the time a request reaches this service
the gateway has put the caller's role and user id into headers.
"""

from typing import Optional

from fastapi import Header, HTTPException

from trainingflow.services.transitions import Actor
from trainingflow.services.vocabulary import Role


def get_actor(
    x_actor_role: Optional[str] = Header(None),
    x_actor_id: Optional[str] = Header(None),
) -> Actor:
    """Current caller as an Actor; 401 without a role, 400 for an unknown one."""
    if not x_actor_role:
        raise HTTPException(status_code=401, detail="X-Actor-Role header required")
    try:
        role = Role(x_actor_role.strip().lower())
    except ValueError:
        raise HTTPException(status_code=400, detail="Unknown role '{}'".format(x_actor_role))
    if role in (Role.SYSTEM, Role.LEARNER):
        raise HTTPException(status_code=400, detail="Role '{}' cannot be asserted by callers".format(role.value))
    return Actor(role=role, user_id=x_actor_id or None)
