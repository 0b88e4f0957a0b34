from django.db import models
from django.utils import timezone
from django.utils.text import slugify


# --- Model 1: The Election ---
# Election metadata only. The ballots themselves never touch the
# database; they live on the ledger (see blockchain.py).

class Election(models.Model):
    """
    Stores the high-level details for a single election.
    e.g., "2025 Mayoral Race"
    """
    STATUS_UPCOMING = "upcoming"
    STATUS_ACTIVE = "active"
    STATUS_ENDED = "ended"
    STATUS_CLOSED = "closed"

    title = models.CharField(max_length=255, unique=True,
                             help_text="The human-readable name of the election.")

    # This election_id is what we'll use in API URLs and on the ledger
    election_id = models.SlugField(max_length=255, unique=True, blank=True,
                                   help_text="A unique ID for use in URLs.")

    description = models.TextField(blank=True, default="")

    # Voting window. Empty means "open from creation" / "no end".
    start_time = models.DateTimeField(null=True, blank=True)
    end_time = models.DateTimeField(null=True, blank=True)

    is_active = models.BooleanField(default=False,
                                    help_text="Marks if this election is open for voting.")

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.title

    def save(self, *args, **kwargs):
        # Automatically create the URL-friendly election_id from the title
        if not self.election_id:
            self.election_id = slugify(self.title)
        super().save(*args, **kwargs)

    @property
    def status(self):
        if not self.is_active:
            return self.STATUS_CLOSED
        now = timezone.now()
        if self.start_time and now < self.start_time:
            return self.STATUS_UPCOMING
        if self.end_time and now > self.end_time:
            return self.STATUS_ENDED
        return self.STATUS_ACTIVE

    @property
    def is_open(self):
        return self.status == self.STATUS_ACTIVE


# --- Model 2: The Candidates ---

class Candidate(models.Model):
    """
    A choice on an election's ballot.
    candidate_id is the value written into each vote on the ledger.
    """
    election = models.ForeignKey(Election, on_delete=models.CASCADE,
                                 related_name="candidates")

    candidate_id = models.SlugField(max_length=255, blank=True)

    name = models.CharField(max_length=255)

    order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['order', 'id']
        # The same ID can't appear twice on one ballot
        unique_together = ('election', 'candidate_id')

    def __str__(self):
        return f"{self.name} ({self.election.title})"

    def save(self, *args, **kwargs):
        if not self.candidate_id:
            self.candidate_id = slugify(self.name)
        super().save(*args, **kwargs)
