"""
FastAPI dependencies for the operator API.
"""
from __future__ import annotations

from typing import Annotated, Optional

from fastapi import Depends, Header, Request

from messaging.bootstrap import Container


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_actor_id(x_actor_id: Annotated[Optional[str], Header()] = None) -> Optional[str]:
    """Operator id forwarded by the authenticating gateway in front of this service."""
    return x_actor_id


ContainerDep = Annotated[Container, Depends(get_container)]
ActorDep = Annotated[Optional[str], Depends(get_actor_id)]
