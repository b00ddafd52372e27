"""
RAG URL routing.
"""
from django.urls import path

from apps.rag.views import RetrieveView

urlpatterns = [
    path('retrieve', RetrieveView.as_view(), name='rag-retrieve'),
]
