"""
ASGI entry point: HTTP goes to Django, WebSockets to the dashboard consumer.

    daphne backend.asgi:application
"""
import os
import django

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'backend.settings')

# Django must be set up before the app modules are imported
django.setup()

from django.core.asgi import get_asgi_application
from channels.routing import ProtocolTypeRouter, URLRouter
from channels.security.websocket import AllowedHostsOriginValidator

import ballot_ledger.routing
from ballot_ledger.ledger import get_ledger

django_asgi_app = get_asgi_application()

# Load (or create) the chain now rather than on the first vote
get_ledger()

application = ProtocolTypeRouter({
    "http": django_asgi_app,
    "websocket": AllowedHostsOriginValidator(
        URLRouter(
            ballot_ledger.routing.websocket_urlpatterns
        )
    ),
})
