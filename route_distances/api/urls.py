from django.urls import path

from route_distances.api import views

urlpatterns = [
    path('sources/', views.SourceListView.as_view(), name='source-list'),
    path('sources/<int:pk>/', views.SourceDetailView.as_view(), name='source-detail'),
    path('destinations/', views.DestinationListView.as_view(), name='destination-list'),
    path('destinations/<int:pk>/', views.DestinationDetailView.as_view(), name='destination-detail'),
    path('calculate/', views.CalculateDistancesView.as_view(), name='calculate'),
    path('distances/', views.DistanceListView.as_view(), name='distance-list'),
    path('distances/check/', views.DistanceCheckView.as_view(), name='distance-check'),
    path('distances/stats/', views.DistanceStatsView.as_view(), name='distance-stats'),
    path('distances/export/', views.DistanceExportView.as_view(), name='distance-export'),
    path('health/', views.health_check, name='health-check'),
]
