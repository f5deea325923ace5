"""Integration-token authentication."""

from .dependencies import ApiToken, StreamToken, verify_api_token, verify_stream_token


__all__ = ["ApiToken", "StreamToken", "verify_api_token", "verify_stream_token"]
