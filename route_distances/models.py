from django.db import models

from route_distances.core.types import KnownLocation, UNRESOLVED


class Source(models.Model):
    """A depot or yard that trips start from. Coordinates are mandatory."""
    name = models.CharField(max_length=255)
    latitude = models.FloatField()
    longitude = models.FloatField()
    address = models.CharField(max_length=500, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['name'], name='route_dista_name_src_idx'),
        ]

    @property
    def location(self):
        return KnownLocation(latitude=self.latitude, longitude=self.longitude)

    def __str__(self):
        return self.name


class Destination(models.Model):
    """A delivery point. Coordinates may be backfilled by geocoding."""
    name = models.CharField(max_length=255)
    pincode = models.CharField(max_length=20, unique=True, null=True, blank=True)
    address = models.CharField(max_length=500, null=True, blank=True)
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['name'], name='route_dista_name_dst_idx'),
        ]

    @property
    def location(self):
        """KnownLocation when both coordinates are set, UNRESOLVED otherwise."""
        if self.latitude is None or self.longitude is None:
            return UNRESOLVED
        return KnownLocation(latitude=self.latitude, longitude=self.longitude)

    @property
    def has_coordinates(self):
        return self.location is not UNRESOLVED

    def __str__(self):
        return f"{self.name} ({self.pincode})" if self.pincode else self.name


class Distance(models.Model):
    """
    Cached driving distance for one (source, destination) pair.

    Rows are write-once and only disappear through the cascade when their
    Source or Destination is deleted.
    """
    source = models.ForeignKey(Source, on_delete=models.CASCADE, related_name='distances')
    destination = models.ForeignKey(Destination, on_delete=models.CASCADE, related_name='distances')
    distance_km = models.FloatField()
    duration_minutes = models.FloatField(null=True, blank=True)
    route_metadata = models.JSONField(null=True, blank=True)
    directions_link = models.URLField(max_length=500, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Distance"
        verbose_name_plural = "Distances"
        constraints = [
            models.UniqueConstraint(
                fields=['source', 'destination'],
                name='unique_source_destination'
            ),
        ]
        indexes = [
            models.Index(fields=['created_at'], name='route_dista_created_idx'),
        ]

    @property
    def pair(self):
        return (self.source_id, self.destination_id)

    def __str__(self):
        return f"{self.source_id} -> {self.destination_id}: {self.distance_km} km"
