from django.urls import path
from .views import (
    LoginView, CustomTokenRefreshView, signup, logout, admin_exists, user_me,
    change_password, user_list, user_detail, user_status,
)

urlpatterns = [
    # Auth endpoints
    path('auth/signup/', signup, name='signup'),
    path('auth/login/', LoginView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/logout/', logout, name='logout'),
    path('auth/me/', user_me, name='user-me'),
    path('auth/change-password/', change_password, name='change-password'),
    path('auth/admin-exists/', admin_exists, name='admin-exists'),

    # User endpoints (admin)
    path('users/', user_list, name='user-list'),
    path('users/<int:pk>/', user_detail, name='user-detail'),
    path('users/<int:pk>/status/', user_status, name='user-status'),
]
