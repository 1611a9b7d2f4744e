from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..services.activity import unread_counts
from ..services.identity import caller_for_user


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def unread_summary(request):
    """Unread badge counts; administrators always get zeros."""
    counts = unread_counts(caller_for_user(request.user))
    return Response({'ok': True, 'messages': counts['messages'], 'requests': counts['requests']})
