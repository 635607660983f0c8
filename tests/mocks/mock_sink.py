"""
Mock Reporting Sink Responses for Testing

Stand-ins for requests.Response as returned by the reporting sink.

Usage:
    from tests.mocks.mock_sink import make_response

    mock_post.side_effect = [make_response(503), make_response(200)]
"""

from typing import Any
from unittest.mock import MagicMock


def make_response(
    status_code: int = 200,
    json_body: Any = None,
    text: str = "",
) -> MagicMock:
    """
    Build a fake sink response.

    Args:
        status_code: HTTP status
        json_body: Parsed JSON body, or an exception for response.json() to raise
        text: Raw body text used in error messages
    """
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if isinstance(json_body, Exception):
        response.json.side_effect = json_body
    else:
        response.json.return_value = (
            json_body if json_body is not None else {"success": True}
        )
    return response
