"""URL routing for notifications."""

from django.urls import include, path  # type: ignore
from rest_framework.routers import DefaultRouter  # type: ignore

from .views import NotificationRequestViewSet

router = DefaultRouter()
router.register(r'', NotificationRequestViewSet, basename='notification')

urlpatterns = [path('', include(router.urls))]
