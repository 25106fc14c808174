"""
URL configuration for authentication app.

URL structure:
    /api/v1/auth/register/   - Create account, returns token + user (POST)
    /api/v1/auth/login/      - Exchange credentials for a token (POST)
    /api/v1/auth/profile/    - Own profile (GET/PUT/PATCH)
    /api/v1/auth/users/search/?q=  - Find other users (GET)
"""

from django.urls import path

from authentication.views import LoginView, ProfileView, RegisterView, UserSearchView

app_name = "authentication"

urlpatterns = [
    path("register/", RegisterView.as_view(), name="register"),
    path("login/", LoginView.as_view(), name="login"),
    path("profile/", ProfileView.as_view(), name="profile"),
    path("users/search/", UserSearchView.as_view(), name="user-search"),
]
