import json
import logging

from asgiref.sync import sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer

from .models import Election
from .views import _get_tally_data  # We import the helper from views

logger = logging.getLogger(__name__)


class DashboardConsumer(AsyncWebsocketConsumer):
    """
    Live dashboard for one election:
    1. Sends the full tally + ledger on connect.
    2. Pushes the full, updated payload after every sealed vote
       (see views._broadcast_update).
    """

    # The ORM and the ledger are sync; run them off the event loop.
    @sync_to_async
    def get_initial_data(self):
        try:
            election = Election.objects.get(election_id=self.election_id)
        except Election.DoesNotExist:
            logger.warning("Dashboard requested for unknown election %s.", self.election_id)
            return None
        return _get_tally_data(election)

    async def connect(self):
        # 1. Get the 'election_id' from the URL
        self.election_id = self.scope['url_route']['kwargs']['election_id']

        # 2. One group per election dashboard
        self.group_name = f'dashboard_{self.election_id}'

        # 3. "Subscribe" this client to the group.
        await self.channel_layer.group_add(
            self.group_name,
            self.channel_name
        )

        await self.accept()

        # 4. Send initial data on connect
        logger.debug("Client connecting to %s.", self.group_name)
        initial_data = await self.get_initial_data()

        if initial_data:
            await self.send(text_data=json.dumps(initial_data))
        else:
            # If election doesn't exist, close the connection
            await self.close()

    async def disconnect(self, close_code):
        logger.debug("Client disconnecting from %s.", self.group_name)
        await self.channel_layer.group_discard(
            self.group_name,
            self.channel_name
        )

    # Called by group_send in views.py; "dashboard.update" -> dashboard_update()
    async def dashboard_update(self, event):
        await self.send(text_data=json.dumps(event['payload']))
