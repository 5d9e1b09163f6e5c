# config/responses.py

from rest_framework import status
from rest_framework.response import Response


def envelope(message, data=None, status_code=status.HTTP_200_OK):
    """
    Successful API response. Callers read the outcome from ``success``,
    never from the presence of ``data``.
    """
    return Response({"success": True, "message": message, "data": data}, status=status_code)
