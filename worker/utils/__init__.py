"""
Worker utilities.
"""
from .http_exceptions import raise_service_unavailable
from .subprocess import CommandFailedError, decode_output, run_cmd
