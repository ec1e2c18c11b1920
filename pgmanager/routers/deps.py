"""Shared router dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from pgmanager.services.provisioning import Provisioner


def get_provisioner(request: Request) -> Provisioner:
    """The Provisioner built by the app lifespan (or injected by tests)."""
    return request.app.state.provisioner


ProvisionerDep = Annotated[Provisioner, Depends(get_provisioner)]
