from pydantic import BaseModel


class ErrorResponse(BaseModel):
    error_code: str
    message: str


class StatusResponse(BaseModel):
    authenticated: bool
    credentials_path: str
    message: str
