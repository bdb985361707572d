"""
Represents an authenticated signing identity on one chain.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    chain_id: int
    rpc_url: str
    active: bool = True
