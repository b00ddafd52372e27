"""
URL configuration for the DocuSearch backend.
"""
from django.urls import path, include

from apps.docs.views import list_documents
from apps.rag.views import SearchView
from config.health import healthz, readyz

urlpatterns = [
    # Health check endpoints
    path('healthz', healthz, name='healthz'),
    path('readyz', readyz, name='readyz'),

    # API routes
    path('api/search', SearchView.as_view(), name='search'),
    path('api/docs', list_documents, name='docs-list'),
    path('api/docs/', include('apps.docs.urls')),
    path('api/rag/', include('apps.rag.urls')),
]
