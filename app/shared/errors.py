"""Domain error types rendered as HTTP responses by FastAPI"""

from fastapi import HTTPException


class ValidationError(HTTPException):
    """Malformed input rejected before persistence"""

    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=404, detail=detail)


class ForbiddenError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=403, detail=detail)


class InvalidStateError(HTTPException):
    """Operation is illegal for the entity's current lifecycle state"""

    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class ConflictError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=409, detail=detail)


class UpstreamError(HTTPException):
    """Payment processor or mail sender failure"""

    def __init__(self, detail: str):
        super().__init__(status_code=502, detail=detail)


class InvalidSignatureError(HTTPException):
    def __init__(self, detail: str = "Invalid webhook signature"):
        super().__init__(status_code=400, detail=detail)
