"""
Shared API Layer
Problem body shared by the HTTP surface
"""
from shared.api.response_models import ErrorResponse

__all__ = ["ErrorResponse"]
