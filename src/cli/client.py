"""HTTP client for the orchestrator tool API."""

import os
from typing import Optional
import urllib.request
import urllib.error
import json

# Default API endpoint
DEFAULT_API_URL = "http://127.0.0.1:8430"
API_TIMEOUT = 10  # seconds; send_message alone waits ~0.5s per call


class OrchestratorClient:
    """Client for the orchestrator tool API."""

    def __init__(self, api_url: Optional[str] = None):
        """
        Initialize client.

        Args:
            api_url: Base URL for API (default: http://127.0.0.1:8430)
        """
        self.api_url = (api_url or os.environ.get("PM_API_URL", DEFAULT_API_URL)).rstrip("/")

    def _request(self, method: str, path: str, data: Optional[dict] = None, timeout: Optional[int] = None) -> tuple[Optional[object], bool, bool]:
        """
        Make an HTTP request.

        Args:
            method: HTTP method
            path: API path
            data: Optional JSON data
            timeout: Optional timeout in seconds (default: API_TIMEOUT)

        Returns:
            Tuple of (response_data, success, unavailable)
            - success=True, unavailable=False: Request succeeded
            - success=False, unavailable=True: Connection error (service unavailable)
            - success=False, unavailable=False: API error (4xx, 5xx response)
        """
        url = f"{self.api_url}{path}"
        request_timeout = timeout if timeout is not None else API_TIMEOUT

        try:
            headers = {"Content-Type": "application/json"}
            body = json.dumps(data).encode() if data is not None else None

            req = urllib.request.Request(url, data=body, headers=headers, method=method)
            with urllib.request.urlopen(req, timeout=request_timeout) as response:
                return json.loads(response.read().decode()), True, False

        except urllib.error.HTTPError as e:
            # API responded but with error status
            try:
                return json.loads(e.read().decode()), False, False
            except ValueError:
                return None, False, False
        except (urllib.error.URLError, OSError):
            # Connection refused, timeout, etc.
            return None, False, True

    def list_tools(self) -> Optional[list]:
        data, success, _ = self._request("GET", "/tools")
        return data if success else None

    def call_tool(self, name: str, arguments: Optional[dict] = None, timeout: Optional[int] = None) -> tuple[Optional[str], bool, bool]:
        """
        Call a tool.

        Returns:
            Tuple of (text, is_error, unavailable). On an HTTP error the text
            is the server's error detail.
        """
        data, success, unavailable = self._request("POST", f"/tools/{name}", arguments or {}, timeout=timeout)
        if unavailable:
            return None, True, True
        if not success:
            detail = data.get("detail") if isinstance(data, dict) else None
            return json.dumps(detail) if detail is not None else None, True, False

        text = "\n".join(part.get("text", "") for part in data.get("content", []))
        return text, bool(data.get("is_error")), False
