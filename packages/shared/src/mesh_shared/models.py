"""Pydantic base models shared across components.

Every request and result that crosses a workflow/activity boundary is a
BaseModel, carried by the Pydantic data converter. A malformed payload fails
validation in the activity that receives it, before any catalog or bus write.
"""

from pydantic import BaseModel


class PlatformResult(BaseModel):
    """Standard result envelope returned by activities.

    Every activity returns this (or a subclass) on success. Failures are raised
    as typed errors instead, because the registration workflow routes on the
    failure kind (see mesh_shared.failures).
    """

    success: bool
    message: str
    data: dict[str, str | int | float | bool | None] | None = None
