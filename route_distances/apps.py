from django.apps import AppConfig


class RouteDistancesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'route_distances'
    verbose_name = "Route Distances"
