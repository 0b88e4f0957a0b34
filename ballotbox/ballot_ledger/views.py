import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.http import Http404
from rest_framework import generics, status, views
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response

from .exceptions import DuplicateVoterError, PersistenceError
from .ledger import get_ledger
from .models import Election
from .permissions import IsVotingTerminal
from .serializers import (
    CastBallotSerializer,
    ChainAuditSerializer,
    ElectionSerializer,
    PublicElectionDetailSerializer,
    PublicLedgerSerializer,
    PublicTallySerializer,
    VerifyVoteSerializer,
    VoteReceiptSerializer,
    VoterStatusSerializer,
)

logger = logging.getLogger(__name__)


# ---
# Helper Functions
# ---
def _get_election(election_id):
    try:
        return Election.objects.get(election_id=election_id)
    except Election.DoesNotExist:
        raise Http404("Election not found.")


def _get_results(election):
    """Per-candidate counts for one election, read straight off the chain."""
    vote_counts = get_ledger().tally(election.election_id)
    results = [
        {
            "candidate_id": candidate.candidate_id,
            "name": candidate.name,
            "votes": vote_counts.get(candidate.candidate_id, 0),
        }
        for candidate in election.candidates.all()
    ]
    return results, sum(vote_counts.values())


def _get_tally_data(election):
    """
    A helper function to get the full dashboard payload.
    This can be called from anywhere.
    """
    results, _ = _get_results(election)
    audit = get_ledger().audit_chain()

    return {
        'tally': PublicTallySerializer(results, many=True).data,
        'ledger': PublicLedgerSerializer(audit['chain'], many=True).data,
        'is_valid': audit['isValid'],
    }


def _broadcast_update(election):
    """Pushes the new dashboard to every open WebSocket for this election."""
    try:
        group_name = f'dashboard_{election.election_id}'
        channel_layer = get_channel_layer()
        if channel_layer is None:
            return

        async_to_sync(channel_layer.group_send)(
            group_name,
            {
                "type": "dashboard.update",  # MUST match function in consumers.py
                "payload": _get_tally_data(election),
            }
        )
        logger.debug("Dashboard update sent to %s.", group_name)
    except Exception:
        # The vote is already on the chain; a failed push must not undo that
        logger.exception("Could not send dashboard update for %s.", election.election_id)


# ---
# API Endpoint 1: Cast Vote (For the Voting Terminal)
# ---
class CastVoteView(views.APIView):
    """
    Takes a ballot, validates it against the election, and seals it
    into a new block on the ledger.

    Permissions:
    - Must be a Voting Terminal (valid API Key).
    """
    permission_classes = [IsVotingTerminal]
    serializer_class = CastBallotSerializer

    def post(self, request, *args, **kwargs):
        # 1. Validate the incoming data
        serializer = self.serializer_class(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        validated_data = serializer.validated_data
        election = validated_data['election_object']

        # 2. Seal the vote into the chain (mines, then persists).
        # Mining blocks this worker thread; under ASGI the other sync
        # views share it, so LEDGER_DIFFICULTY must stay small.
        try:
            block_index = get_ledger().submit_vote(
                validated_data['voter_id'],
                validated_data['secret_token'],
                validated_data['candidate_id'],
                election.election_id,
            )
        except DuplicateVoterError:
            return Response(
                {"status": "error", "message": "You have already voted in this election."},
                status=status.HTTP_400_BAD_REQUEST
            )
        except PersistenceError as e:
            logger.error("Vote for %s was not recorded: %s", election.election_id, e)
            return Response(
                {"status": "error", "message": "The vote could not be recorded. Please try again."},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        # 3. Tell the dashboards
        _broadcast_update(election)

        return Response(
            {"status": "success", "message": "Vote recorded on blockchain.", "block_index": block_index},
            status=status.HTTP_201_CREATED
        )


# ---
# API Endpoint 2: Check Voter Status (Terminal "Fail-Fast")
# ---
class CheckVoterStatusView(views.APIView):
    """
    A "pre-check" for the terminal: is this voter clear to vote
    *before* they are shown a ballot?

    Permissions:
    - Must be a Voting Terminal (valid API Key).
    """
    permission_classes = [IsVotingTerminal]
    serializer_class = VoterStatusSerializer

    def post(self, request, *args, **kwargs):
        serializer = self.serializer_class(data=request.data)
        if not serializer.is_valid():
            # Election closed, or already voted
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        return Response(
            {"status": "success", "message": "Voter is valid and clear to vote."},
            status=status.HTTP_200_OK
        )


# ---
# API Endpoint 3: Verify My Vote
# ---
class VerifyVoteView(views.APIView):
    """
    Confirms a ballot is on the chain and where, without revealing
    the candidate it was cast for.

    Permissions:
    - Must be a Voting Terminal (valid API Key).
    """
    permission_classes = [IsVotingTerminal]
    serializer_class = VerifyVoteSerializer

    def post(self, request, *args, **kwargs):
        serializer = self.serializer_class(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        receipt = get_ledger().verify(data['voter_id'], data['secret_token'], data['election_id'])
        return Response(VoteReceiptSerializer(receipt).data, status=status.HTTP_200_OK)


# ---
# API Endpoint 4: Public Dashboard (tally + ledger)
# ---
class PublicTallyView(views.APIView):
    """
    A public, read-only endpoint for the real-time dashboard.
    Returns both the tally and the anonymous ledger.
    """
    permission_classes = [AllowAny]

    def get(self, request, election_id, *args, **kwargs):
        election = _get_election(election_id)
        return Response(_get_tally_data(election), status=status.HTTP_200_OK)


# ---
# API Endpoint 5: Results
# ---
class ElectionResultsView(views.APIView):
    """Per-candidate results with the total number of ballots."""
    permission_classes = [AllowAny]

    def get(self, request, election_id, *args, **kwargs):
        election = _get_election(election_id)
        results, total_votes = _get_results(election)

        return Response({
            "election": {
                "election_id": election.election_id,
                "title": election.title,
                "status": election.status,
            },
            "results": PublicTallySerializer(results, many=True).data,
            "total_votes": total_votes,
        })


# ---
# API Endpoint 6: Public Chain Audit
# ---
class ChainAuditView(views.APIView):
    """
    The whole chain for transparency: block linkage and an integrity
    verdict, with no vote contents.
    """
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        audit = get_ledger().audit_chain()
        if not audit['isValid']:
            logger.error("Chain integrity check failed during audit.")
        return Response(ChainAuditSerializer(audit).data)


# ---
# API Endpoint 7: Public Election Detail (For the Terminal)
# ---
class PublicElectionDetailView(views.APIView):
    """
    Lets the terminal fetch the ballot (candidates) of an active election.
    """
    permission_classes = [AllowAny]

    def get(self, request, election_id, *args, **kwargs):
        election = _get_election(election_id)
        if not election.is_active:
            raise Http404("This election is not active.")

        serializer = PublicElectionDetailSerializer(election)
        return Response(serializer.data)


# ---
# API Endpoint 8: Admin (For the Admin Dashboard)
# ---
class CreateElectionView(generics.ListCreateAPIView):
    """
    Admin-only endpoint to create a new election or list existing ones.
    """
    permission_classes = [IsAdminUser]
    queryset = Election.objects.prefetch_related('candidates')
    serializer_class = ElectionSerializer
