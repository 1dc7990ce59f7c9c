"""
Serializers for the distance cache API.

This module converts between API requests/responses and the Source,
Destination and Distance models, and validates query parameters.
"""
from rest_framework import serializers

from route_distances.core.constants import MAX_LATITUDE, MAX_LONGITUDE, MIN_LATITUDE, MIN_LONGITUDE
from route_distances.models import Destination, Distance, Source
from route_distances.settings import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


class SourceSerializer(serializers.ModelSerializer):
    """Serializer for Source objects."""
    latitude = serializers.FloatField(min_value=MIN_LATITUDE, max_value=MAX_LATITUDE)
    longitude = serializers.FloatField(min_value=MIN_LONGITUDE, max_value=MAX_LONGITUDE)
    address = serializers.CharField(required=False, allow_null=True, allow_blank=True)

    class Meta:
        model = Source
        fields = ['id', 'name', 'latitude', 'longitude', 'address', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_name(self, value):
        if not value.strip():
            raise serializers.ValidationError("Name must not be blank.")
        return value


class DestinationSerializer(serializers.ModelSerializer):
    """Serializer for Destination objects. Coordinates are optional."""
    pincode = serializers.CharField(max_length=20, required=False, allow_null=True, allow_blank=True)
    address = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    latitude = serializers.FloatField(
        min_value=MIN_LATITUDE, max_value=MAX_LATITUDE, required=False, allow_null=True
    )
    longitude = serializers.FloatField(
        min_value=MIN_LONGITUDE, max_value=MAX_LONGITUDE, required=False, allow_null=True
    )

    class Meta:
        model = Destination
        fields = ['id', 'name', 'pincode', 'address', 'latitude', 'longitude', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_name(self, value):
        if not value.strip():
            raise serializers.ValidationError("Name must not be blank.")
        return value

    def validate(self, data):
        if (data.get('latitude') is None) != (data.get('longitude') is None):
            raise serializers.ValidationError("Latitude and longitude must be given together.")
        return data


class SourceSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Source
        fields = ['id', 'name', 'latitude', 'longitude']


class DestinationSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Destination
        fields = ['id', 'name', 'pincode', 'latitude', 'longitude']


class DistanceSerializer(serializers.ModelSerializer):
    """Serializer for cached Distance rows with their endpoints embedded."""
    source = SourceSummarySerializer(read_only=True)
    destination = DestinationSummarySerializer(read_only=True)

    class Meta:
        model = Distance
        fields = [
            'id', 'source', 'destination', 'distance_km', 'duration_minutes',
            'route_metadata', 'directions_link', 'created_at'
        ]


class CalculateQuerySerializer(serializers.Serializer):
    """Query parameters selecting the completion scope."""
    source_id = serializers.IntegerField(required=False, min_value=1)
    destination_id = serializers.IntegerField(required=False, min_value=1)


class CompletionResultSerializer(serializers.Serializer):
    """Serializer for completion run results."""
    rows = DistanceSerializer(many=True)
    truncated = serializers.BooleanField()
    timed_out = serializers.BooleanField()
    elapsed_ms = serializers.IntegerField(help_text="Wall-clock time of the run in milliseconds")
    new_calculations = serializers.IntegerField(help_text="Distances computed and stored by this run")


class DistanceListQuerySerializer(serializers.Serializer):
    """Filters and pagination for the distance listing."""
    source = serializers.CharField(required=False, allow_blank=True)
    destination = serializers.CharField(required=False, allow_blank=True)
    page = serializers.IntegerField(required=False, default=1, min_value=1)
    limit = serializers.IntegerField(required=False, default=DEFAULT_PAGE_SIZE, min_value=1,
                                     max_value=MAX_PAGE_SIZE)


class PaginationSerializer(serializers.Serializer):
    page = serializers.IntegerField()
    limit = serializers.IntegerField()
    total = serializers.IntegerField()
    pages = serializers.IntegerField()
    has_more = serializers.BooleanField()


class DistanceListResponseSerializer(serializers.Serializer):
    distances = DistanceSerializer(many=True)
    pagination = PaginationSerializer()


class DistanceCheckQuerySerializer(serializers.Serializer):
    source_id = serializers.IntegerField(min_value=1)
    destination_id = serializers.IntegerField(min_value=1)


class StatsSerializer(serializers.Serializer):
    """Serializer for cache completeness statistics."""
    source_count = serializers.IntegerField()
    destination_count = serializers.IntegerField()
    cached_pair_count = serializers.IntegerField()
    possible_pair_count = serializers.IntegerField()
    missing_pair_count = serializers.IntegerField()
    completion_percentage = serializers.IntegerField()
    last_updated = serializers.CharField()


class ExportQuerySerializer(serializers.Serializer):
    source = serializers.CharField(required=False, allow_blank=True)
    destination = serializers.CharField(required=False, allow_blank=True)
