from typing import Any, Dict, Optional

from rest_framework import status
from rest_framework.response import Response


class APIResponse:
    """Success envelope shared by the invoice and settings endpoints."""

    @staticmethod
    def success(
        data: Any = None,
        message: str = "OK",
        status_code: int = status.HTTP_200_OK,
        warning: Optional[Dict[str, str]] = None,
    ) -> Response:
        """
        ``{"success": true, "message": ..., "data": ..., "warning"?: {...}}``

        ``warning`` carries a follow-up step (payment link or email) that did not
        complete after the invoice itself was saved.
        """
        body: Dict[str, Any] = {"success": True, "message": message, "data": data}
        if warning:
            body["warning"] = warning
        return Response(body, status=status_code)
