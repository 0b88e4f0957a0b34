from django.db import transaction
from django.utils.text import slugify
from rest_framework import serializers

from .ledger import get_ledger
from .models import Candidate, Election


def _get_open_election(election_id):
    """Shared by every terminal serializer: the election must be accepting votes."""
    try:
        election = Election.objects.get(election_id=election_id, is_active=True)
    except Election.DoesNotExist:
        raise serializers.ValidationError(
            f"Election '{election_id}' does not exist or is not active."
        )

    if not election.is_open:
        if election.status == Election.STATUS_UPCOMING:
            raise serializers.ValidationError("Election has not started yet.")
        raise serializers.ValidationError("Election has ended.")
    return election


# --- Serializers for the Voting Terminal ---

class CastBallotSerializer(serializers.Serializer):
    """
    This serializer is used by the terminal to *submit* a vote.
    The raw credentials are only used to derive the voter hash.
    """
    voter_id = serializers.CharField(write_only=True)
    secret_token = serializers.CharField(write_only=True)

    election_id = serializers.SlugField()
    candidate_id = serializers.SlugField()

    def validate(self, data):
        # 1. Check if the election exists and is open
        election = _get_open_election(data.get('election_id'))
        data['election_object'] = election  # Pass the object to the view

        # 2. Check the candidate is on this ballot
        if not election.candidates.filter(candidate_id=data.get('candidate_id')).exists():
            raise serializers.ValidationError("Invalid candidate for this election.")

        # Duplicate votes are caught by the ledger itself, inside its
        # write lock, so two racing terminals can't both get through.
        return data


class VoterStatusSerializer(serializers.Serializer):
    """
    Checks that a voter has not yet voted in an open election.
    Used by the terminal *before* showing the ballot.
    """
    voter_id = serializers.CharField(write_only=True)
    secret_token = serializers.CharField(write_only=True)
    election_id = serializers.SlugField()

    def validate(self, data):
        _get_open_election(data.get('election_id'))

        if get_ledger().has_voted(data['voter_id'], data['secret_token'], data['election_id']):
            raise serializers.ValidationError("Duplicate vote: This voter has already cast a ballot.")

        return data


class VerifyVoteSerializer(serializers.Serializer):
    """Input for a voter checking that their ballot made it onto the chain."""
    voter_id = serializers.CharField(write_only=True)
    secret_token = serializers.CharField(write_only=True)
    election_id = serializers.SlugField()

    def validate_election_id(self, value):
        if not Election.objects.filter(election_id=value).exists():
            raise serializers.ValidationError(f"Election '{value}' does not exist.")
        return value


# --- Serializers for the Public Dashboard ---

class CandidateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Candidate
        fields = ['candidate_id', 'name', 'order']


class PublicElectionDetailSerializer(serializers.ModelSerializer):
    """
    Read-only serializer for the terminal to fetch the ballot.
    """
    candidates = CandidateSerializer(many=True, read_only=True)
    status = serializers.ReadOnlyField()

    class Meta:
        model = Election
        fields = ['title', 'election_id', 'description', 'status', 'candidates']


class PublicLedgerSerializer(serializers.Serializer):
    """
    One block of the public audit view.
    Only linkage data: no voter hashes, no choices.
    """
    index = serializers.IntegerField()
    timestamp = serializers.IntegerField()
    previousHash = serializers.CharField()
    hash = serializers.CharField()
    nonce = serializers.IntegerField()
    transactionCount = serializers.IntegerField()


class ChainAuditSerializer(serializers.Serializer):
    chain = PublicLedgerSerializer(many=True)
    isValid = serializers.BooleanField()


class PublicTallySerializer(serializers.Serializer):
    """
    Read-only serializer to format the *aggregated* tally.
    It does not show individual votes.
    """
    candidate_id = serializers.CharField()
    name = serializers.CharField()
    votes = serializers.IntegerField()


class VoteReceiptSerializer(serializers.Serializer):
    """The verify result. There is deliberately no candidate field."""
    exists = serializers.BooleanField()
    blockIndex = serializers.IntegerField(required=False)
    blockHash = serializers.CharField(required=False)
    timestamp = serializers.IntegerField(required=False)


# --- Serializers for the Admin ---

class ElectionSerializer(serializers.ModelSerializer):
    """
    Used by the Admin to create and view elections.
    Candidates are given as a plain list of names:
    {
        "title": "Class President",
        "candidate_names": ["Alice", "Bob"]
    }
    """
    candidates = CandidateSerializer(many=True, read_only=True)
    candidate_names = serializers.ListField(
        child=serializers.CharField(max_length=255),
        write_only=True,
        min_length=2,
    )
    status = serializers.ReadOnlyField()

    class Meta:
        model = Election
        fields = ['title', 'election_id', 'description', 'start_time', 'end_time',
                  'is_active', 'status', 'candidates', 'candidate_names']
        read_only_fields = ['election_id']

    def validate_candidate_names(self, value):
        slugs = [slugify(name) for name in value]
        if not all(slugs):
            raise serializers.ValidationError("Candidate names must contain letters or digits.")
        if len(set(slugs)) != len(slugs):
            raise serializers.ValidationError("Candidate names must be unique.")
        return value

    def validate(self, data):
        start, end = data.get('start_time'), data.get('end_time')
        if start and end and end <= start:
            raise serializers.ValidationError("end_time must be after start_time.")
        return data

    def create(self, validated_data):
        names = validated_data.pop('candidate_names')
        # Election and ballot are created together or not at all
        with transaction.atomic():
            election = Election.objects.create(**validated_data)
            Candidate.objects.bulk_create([
                Candidate(election=election, candidate_id=slugify(name), name=name, order=idx)
                for idx, name in enumerate(names)
            ])
        return election
