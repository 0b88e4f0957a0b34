"""
URL configuration for the Ballot Box backend.

/admin/   Django admin (elections and candidates)
/api/v1/  the ledger API (see ballot_ledger/urls.py)
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # Any URL starting with 'api/v1/' is handled by ballot_ledger.urls
    path('api/v1/', include('ballot_ledger.urls')),
]
