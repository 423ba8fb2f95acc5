from typing import Optional

from pydantic import BaseModel


class WithdrawTeamRequest(BaseModel):
    reason: Optional[str] = None
