"""Session event posted by the UI when the identity gateway reports a sign-in or sign-out."""

from typing import Literal

from pydantic import BaseModel


class SessionEvent(BaseModel):
    event: Literal["signed_in", "signed_out"]
