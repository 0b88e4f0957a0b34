from django.urls import path
from . import views

# This file maps URL endpoints to the View classes in views.py

urlpatterns = [
    # --- Voting Terminal Endpoints ---
    # e.g., POST /api/v1/vote/cast
    path('vote/cast', views.CastVoteView.as_view(), name='cast-vote'),
    path('vote/check-status', views.CheckVoterStatusView.as_view(), name='check-voter-status'),
    path('vote/verify', views.VerifyVoteView.as_view(), name='verify-vote'),

    # e.g., GET /api/v1/election/class-president
    path('election/<slug:election_id>', views.PublicElectionDetailView.as_view(), name='public-election-detail'),

    # --- Public Dashboard Endpoints ---
    path('dashboard/<slug:election_id>', views.PublicTallyView.as_view(), name='public-tally'),
    path('results/<slug:election_id>', views.ElectionResultsView.as_view(), name='election-results'),
    path('chain', views.ChainAuditView.as_view(), name='chain-audit'),

    # --- Admin Endpoints ---
    path('admin/elections', views.CreateElectionView.as_view(), name='admin-create-election'),
]
