"""HTTP-facing exceptions for the API layer."""

from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class BaseAPIException(HTTPException):
    """Base API exception with a machine-readable error code."""
    
    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        detail = {
            "error": {
                "code": error_code,
                "message": message
            }
        }
        if details:
            detail["error"]["details"] = details
        
        super().__init__(status_code=status_code, detail=detail)


class ServerNotConnected(BaseAPIException):
    
    def __init__(self, server_id: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error_code="SERVER_NOT_CONNECTED",
            message=f"Server {server_id} is not connected",
            details={"serverId": server_id}
        )


class ServerNotFound(BaseAPIException):
    
    def __init__(self, server_id: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="SERVER_NOT_FOUND",
            message=f'Server with id "{server_id}" not found',
            details={"serverId": server_id}
        )


class ServerAlreadyExists(BaseAPIException):
    
    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error_code="SERVER_ALREADY_EXISTS",
            message=message
        )


class InvalidRequest(BaseAPIException):
    
    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="INVALID_REQUEST",
            message=message
        )


class ExecutionFailed(BaseAPIException):
    
    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="EXECUTION_FAILED",
            message=message
        )
