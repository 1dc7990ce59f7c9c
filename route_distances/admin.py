from django.contrib import admin

from .models import Destination, Distance, Source


@admin.register(Source)
class SourceAdmin(admin.ModelAdmin):
    list_display = ("name", "latitude", "longitude", "address")
    search_fields = ("name",)


@admin.register(Destination)
class DestinationAdmin(admin.ModelAdmin):
    list_display = ("name", "pincode", "latitude", "longitude")
    search_fields = ("name", "pincode")


@admin.register(Distance)
class DistanceAdmin(admin.ModelAdmin):
    list_display = ("source", "destination", "distance_km", "duration_minutes", "created_at")
    list_select_related = ("source", "destination")
    search_fields = ("source__name", "destination__name")
    readonly_fields = ("created_at",)
