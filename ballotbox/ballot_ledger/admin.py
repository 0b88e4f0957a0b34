from django.contrib import admin
from .models import Candidate, Election


class CandidateInline(admin.TabularInline):
    model = Candidate
    extra = 2
    prepopulated_fields = {'candidate_id': ('name',)}


@admin.register(Election)
class ElectionAdmin(admin.ModelAdmin):
    """
    Customizes the Admin view for the Election model.
    Ballots themselves are on the ledger, not here, so there is
    nothing vote-related to edit.
    """
    list_display = ('title', 'election_id', 'is_active', 'start_time', 'end_time')
    list_filter = ('is_active',)
    search_fields = ('title', 'election_id')
    prepopulated_fields = {'election_id': ('title',)}  # Auto-fills the slug
    inlines = [CandidateInline]
