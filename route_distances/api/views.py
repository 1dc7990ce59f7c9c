"""
API views for the distance cache.

This module provides the endpoints for registering locations, completing
and reading cached distances, statistics and spreadsheet export.
"""
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.decorators import api_view
from django.http import HttpResponse
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi
import logging

from route_distances.core.exceptions import (
    DuplicatePincode,
    ExportTooLarge,
    NothingToExport,
    ProviderNotConfigured,
    ScopeNotFound,
    UngeocodableDestination,
)
from route_distances.core.types import Scope
from route_distances.services.completion_service import CompletionService
from route_distances.services.distance_cache_service import DistanceCache
from route_distances.services.export_service import DistanceExportService, XLSX_CONTENT_TYPE
from route_distances.services.location_service import LocationService
from route_distances.services.query_service import DistanceQueryService
from route_distances.api.serializers import (
    CalculateQuerySerializer,
    CompletionResultSerializer,
    DestinationSerializer,
    DistanceCheckQuerySerializer,
    DistanceListQuerySerializer,
    DistanceListResponseSerializer,
    DistanceSerializer,
    ExportQuerySerializer,
    SourceSerializer,
    StatsSerializer,
)

logger = logging.getLogger(__name__)

source_id_param = openapi.Parameter(
    'source_id', openapi.IN_QUERY, type=openapi.TYPE_INTEGER,
    description="Restrict the run to one source"
)
destination_id_param = openapi.Parameter(
    'destination_id', openapi.IN_QUERY, type=openapi.TYPE_INTEGER,
    description="Restrict the run to one destination"
)
source_filter_param = openapi.Parameter(
    'source', openapi.IN_QUERY, type=openapi.TYPE_STRING,
    description="Case-insensitive substring of the source name"
)
destination_filter_param = openapi.Parameter(
    'destination', openapi.IN_QUERY, type=openapi.TYPE_STRING,
    description="Case-insensitive substring of the destination name"
)


def error_response(error, action):
    """
    Translate a service exception into an error Response.

    Args:
        error: The exception raised by the service layer.
        action: Short description of what failed, used for unexpected errors.

    Returns:
        Response object with an error body and matching status code.
    """
    if isinstance(error, ScopeNotFound):
        return Response({"error": str(error)}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(error, DuplicatePincode):
        return Response(
            {"error": str(error), "existing": DestinationSerializer(error.existing).data},
            status=status.HTTP_409_CONFLICT
        )
    if isinstance(error, UngeocodableDestination):
        return Response({"error": str(error)}, status=status.HTTP_422_UNPROCESSABLE_ENTITY)
    if isinstance(error, ProviderNotConfigured):
        return Response({"error": str(error)}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
    if isinstance(error, (NothingToExport, ExportTooLarge)):
        return Response({"error": str(error)}, status=status.HTTP_400_BAD_REQUEST)

    logger.exception("Error during %s: %s", action, str(error))
    return Response(
        {"error": f"{action.capitalize()} failed: {str(error)}"},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )


class SourceListView(APIView):
    """
    API view for listing and registering sources.
    """

    @swagger_auto_schema(responses={200: SourceSerializer(many=True)})
    def get(self, request, format=None):
        sources = LocationService.list_sources()
        return Response(SourceSerializer(sources, many=True).data)

    @swagger_auto_schema(
        request_body=SourceSerializer,
        responses={201: SourceSerializer},
        operation_description="Register a source. Coordinates are required."
    )
    def post(self, request, format=None):
        serializer = SourceSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            source = LocationService().create_source(**serializer.validated_data)
            return Response(SourceSerializer(source).data, status=status.HTTP_201_CREATED)
        except Exception as e:
            return error_response(e, "source registration")


class SourceDetailView(APIView):
    """
    API view for editing and deleting one source.
    """

    @swagger_auto_schema(
        request_body=SourceSerializer,
        responses={200: SourceSerializer},
        operation_description="Edit a source. Cached distances are kept."
    )
    def patch(self, request, pk, format=None):
        serializer = SourceSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            source = LocationService().update_source(pk, **serializer.validated_data)
            return Response(SourceSerializer(source).data)
        except Exception as e:
            return error_response(e, "source update")

    @swagger_auto_schema(operation_description="Delete a source and every distance cached for it.")
    def delete(self, request, pk, format=None):
        try:
            name, deleted = LocationService().delete_source(pk)
        except Exception as e:
            return error_response(e, "source deletion")

        return Response({
            "message": "Source deleted successfully",
            "deleted_distances": deleted,
            "source_name": name,
        })


class DestinationListView(APIView):
    """
    API view for listing, registering and geocoding destinations.
    """

    @swagger_auto_schema(responses={200: DestinationSerializer(many=True)})
    def get(self, request, format=None):
        destinations = LocationService.list_destinations()
        return Response(DestinationSerializer(destinations, many=True).data)

    @swagger_auto_schema(
        request_body=DestinationSerializer,
        responses={201: DestinationSerializer},
        operation_description="Register a destination. It is geocoded when coordinates are omitted; "
                              "a duplicate pincode returns 409 with the existing destination."
    )
    def post(self, request, format=None):
        serializer = DestinationSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            destination = LocationService().create_destination(**serializer.validated_data)
            return Response(DestinationSerializer(destination).data, status=status.HTTP_201_CREATED)
        except Exception as e:
            return error_response(e, "destination registration")

    @swagger_auto_schema(operation_description="Geocode every destination that has no coordinates yet.")
    def patch(self, request, format=None):
        try:
            result = LocationService().backfill_coordinates()
        except Exception as e:
            return error_response(e, "coordinate backfill")

        return Response({
            "message": f"Updated coordinates for {result['updated']} destinations",
            "updated": result['updated'],
            "total": result['total'],
        })


class DestinationDetailView(APIView):
    """
    API view for editing and deleting one destination.
    """

    @swagger_auto_schema(request_body=DestinationSerializer, responses={200: DestinationSerializer})
    def patch(self, request, pk, format=None):
        serializer = DestinationSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            destination = LocationService().update_destination(pk, **serializer.validated_data)
            return Response(DestinationSerializer(destination).data)
        except Exception as e:
            return error_response(e, "destination update")

    @swagger_auto_schema(operation_description="Delete a destination and every distance cached for it.")
    def delete(self, request, pk, format=None):
        try:
            name, deleted = LocationService().delete_destination(pk)
        except Exception as e:
            return error_response(e, "destination deletion")

        return Response({
            "message": "Destination deleted successfully",
            "deleted_distances": deleted,
            "destination_name": name,
        })


class CalculateDistancesView(APIView):
    """
    API view for completing the distance cache over a scope.
    """

    @swagger_auto_schema(
        manual_parameters=[source_id_param, destination_id_param],
        responses={200: CompletionResultSerializer},
        operation_description="Return every cached distance in the scope, computing the missing ones. "
                              "Omit both ids for the full matrix. A run cut short by the time budget "
                              "still returns 200 with timed_out set."
    )
    def post(self, request, format=None):
        """
        POST endpoint for distance completion.

        Args:
            request: HTTP request object with optional source_id and destination_id query parameters.
            format: Format of the response.

        Returns:
            Response object with the scope's rows and run metadata.
        """
        serializer = CalculateQuerySerializer(data=request.query_params)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        scope = Scope(
            source_id=serializer.validated_data.get('source_id'),
            destination_id=serializer.validated_data.get('destination_id')
        )

        try:
            result = CompletionService().complete(scope)
        except Exception as e:
            return error_response(e, "distance calculation")

        response = Response(CompletionResultSerializer(result).data, status=status.HTTP_200_OK)
        response['X-Calculation-Time'] = f"{result.elapsed_ms}ms"
        response['X-New-Calculations'] = str(result.new_calculations)
        response['X-Total-Results'] = str(len(result.rows))
        response['X-Timeout'] = 'true' if result.timed_out else 'false'
        return response


class DistanceListView(APIView):
    """
    API view for paging through cached distances. Never calls the provider.
    """

    @swagger_auto_schema(
        query_serializer=DistanceListQuerySerializer,
        responses={200: DistanceListResponseSerializer}
    )
    def get(self, request, format=None):
        serializer = DistanceListQuerySerializer(data=request.query_params)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        params = serializer.validated_data
        try:
            result = DistanceQueryService().list(
                source_filter=params.get('source'),
                destination_filter=params.get('destination'),
                page=params['page'],
                page_size=params['limit']
            )
        except Exception as e:
            return error_response(e, "distance listing")

        return Response({
            "distances": DistanceSerializer(result['rows'], many=True).data,
            "pagination": {
                "page": result['page'],
                "limit": result['page_size'],
                "total": result['total'],
                "pages": result['total_pages'],
                "has_more": result['has_more'],
            },
        })


class DistanceCheckView(APIView):
    """
    API view reporting whether one pair is already cached.
    """

    @swagger_auto_schema(query_serializer=DistanceCheckQuerySerializer)
    def get(self, request, format=None):
        serializer = DistanceCheckQuerySerializer(data=request.query_params)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        distance = DistanceCache().get(
            serializer.validated_data['source_id'],
            serializer.validated_data['destination_id']
        )
        return Response({
            "exists": distance is not None,
            "distance": DistanceSerializer(distance).data if distance else None,
        })


class DistanceStatsView(APIView):
    """
    API view for cache completeness statistics.
    """

    @swagger_auto_schema(responses={200: StatsSerializer})
    def get(self, request, format=None):
        try:
            stats = DistanceQueryService().stats()
        except Exception as e:
            return error_response(e, "statistics")
        return Response(StatsSerializer(stats).data)


class DistanceExportView(APIView):
    """
    API view for downloading the distance matrix as an Excel workbook.
    """

    @swagger_auto_schema(
        manual_parameters=[source_filter_param, destination_filter_param],
        operation_description="Download one-way and round-trip distance matrices as .xlsx."
    )
    def get(self, request, format=None):
        serializer = ExportQuerySerializer(data=request.query_params)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            filename, content = DistanceExportService().export(
                source_filter=serializer.validated_data.get('source'),
                destination_filter=serializer.validated_data.get('destination')
            )
        except Exception as e:
            return error_response(e, "export")

        response = HttpResponse(content, content_type=XLSX_CONTENT_TYPE)
        response['Content-Disposition'] = f'attachment; filename="{filename}"'
        response['Content-Length'] = str(len(content))
        return response


@api_view(['GET'])
def health_check(request):
    """
    Health check endpoint to verify the API is running.

    Args:
        request: HTTP request object.

    Returns:
        Response object with health status.
    """
    return Response({"status": "healthy"}, status=status.HTTP_200_OK)
