from pydantic import BaseModel


class InvoiceResponse(BaseModel):
    success: bool
    message: str
    path: str
