from django.urls import include, path
from rest_framework.routers import DefaultRouter
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

from practice.api import views

router = DefaultRouter()
router.register('clients', views.ClientViewSet, basename='client')
router.register('tasks', views.TaskViewSet, basename='task')
router.register('billing/qr-codes', views.QRCodeViewSet, basename='qr-code')
router.register('billing/bank-accounts', views.BankAccountViewSet, basename='bank-account')
router.register('billing/letterheads', views.LetterheadViewSet, basename='letterhead')
router.register('activities', views.ActivityViewSet, basename='activity')
router.register('users', views.UserViewSet, basename='user')

urlpatterns = [
    path('auth/token/', views.CustomTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', views.CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/me/', views.MeView.as_view(), name='me'),
    path('billing/dashboard/', views.BillingDashboardView.as_view(), name='billing_dashboard'),
    path('billing/settings/', views.PaymentSettingsView.as_view(), name='payment_settings'),
    path('dashboard/stats/', views.DashboardView.as_view(), name='dashboard_stats'),
    path('dashboard/overdue/', views.OverdueItemsView.as_view(), name='dashboard_overdue'),
    path('dashboard/staff-stats/', views.StaffStatsView.as_view(), name='dashboard_staff_stats'),
    path('management/inactive-entities/', views.InactiveEntitiesView.as_view(), name='inactive_entities'),
    path('management/inactive-staff-tasks/', views.InactiveStaffTasksView.as_view(), name='inactive_staff_tasks'),
    path('management/staff/<str:staff_id>/', views.DeleteInactiveStaffView.as_view(), name='delete_inactive_staff'),
    path('management/clients/<str:client_id>/', views.DeleteInactiveClientView.as_view(), name='delete_inactive_client'),
    path('health/', views.HealthView.as_view(), name='health'),
    path('health/db/', views.DatabaseHealthView.as_view(), name='health_db'),
    path('schema/', SpectacularAPIView.as_view(), name='schema'),
    path('docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
    path('', include(router.urls)),
]
