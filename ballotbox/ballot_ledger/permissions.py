from hmac import compare_digest

from django.conf import settings
from rest_framework.permissions import BasePermission


class IsVotingTerminal(BasePermission):
    """
    Allows access only to requests that contain the valid
    terminal API key (VOTING_TERMINAL_API_KEY) in their headers.
    """

    def has_permission(self, request, view):
        # We check for a custom header: 'X-API-Key'
        key = request.headers.get('x-api-key')
        expected = getattr(settings, 'VOTING_TERMINAL_API_KEY', None)

        if not key or not expected:
            return False

        # Constant-time comparison
        return compare_digest(key.encode('utf-8'), expected.encode('utf-8'))
