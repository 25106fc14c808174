"""
URL configuration for the contacts app.

Router-generated routes under /api/v1/contacts/, see views.ContactViewSet.
"""

from django.urls import include, path
from rest_framework.routers import SimpleRouter

from contacts.views import ContactViewSet

app_name = "contacts"

router = SimpleRouter()
router.register("", ContactViewSet, basename="contact")

urlpatterns = [
    path("", include(router.urls)),
]
