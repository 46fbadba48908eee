from pydantic import BaseModel, Field


class DepositRequest(BaseModel):
    amount: int


class WithdrawRequest(BaseModel):
    recipient: str
    amount: int
    nonce: int = Field(ge=0)
    signature: str = Field(description="0x-prefixed hex of r || s || v (65 bytes)")
