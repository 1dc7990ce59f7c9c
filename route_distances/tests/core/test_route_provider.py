import unittest
from unittest.mock import patch, MagicMock

import requests

from route_distances.core.exceptions import ProviderError, ProviderNotConfigured
from route_distances.core.route_provider import GoogleRouteProvider
from route_distances.core.types import UNCOMPUTED, KnownLocation
from route_distances.settings import (
    GOOGLE_DISTANCE_MATRIX_URL,
    GOOGLE_GEOCODE_URL,
    MAX_RETRIES,
    REQUEST_TIMEOUT_SECONDS,
)


def _json_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    return response


def _element(meters, seconds):
    return {'status': 'OK', 'distance': {'value': meters}, 'duration': {'value': seconds}}


class TestGoogleRouteProvider(unittest.TestCase):
    """Test cases for GoogleRouteProvider."""

    def setUp(self):
        """Set up test fixtures."""
        self.provider = GoogleRouteProvider(api_key='dummy_key', chunk_delay=0, region_name='Tamil Nadu, India')
        self.depot = KnownLocation(13.0, 80.2)
        self.town_x = KnownLocation(12.9, 79.1)
        self.town_y = KnownLocation(11.0, 78.0)

    def test_directions_url(self):
        url = GoogleRouteProvider.directions_url(self.depot, self.town_x)
        self.assertEqual(url, "https://www.google.com/maps/dir/13.0,80.2/12.9,79.1")

    def test_minutes_round_half_up(self):
        self.assertEqual(GoogleRouteProvider._to_minutes(1530), 26)
        self.assertEqual(GoogleRouteProvider._to_minutes(1529), 25)
        self.assertEqual(GoogleRouteProvider._to_minutes(0), 0)

    def test_process_matrix_response(self):
        """Test processing of Distance Matrix API response data."""
        mock_response = {
            'rows': [
                {'elements': [_element(10000, 600), _element(20000, 1200)]},
                {'elements': [_element(30000, 1800), _element(5000, 300)]},
            ]
        }

        rows = GoogleRouteProvider._process_matrix_response(
            mock_response, [self.depot, self.town_x], [self.town_x, self.town_y]
        )

        # Meters are converted to kilometers and seconds to minutes
        self.assertEqual(rows[0][0].distance_km, 10.0)
        self.assertEqual(rows[0][1].distance_km, 20.0)
        self.assertEqual(rows[1][0].distance_km, 30.0)
        self.assertEqual(rows[1][1].distance_km, 5.0)
        self.assertEqual(rows[0][0].duration_minutes, 10)
        self.assertEqual(rows[1][0].duration_minutes, 30)
        self.assertEqual(rows[1][1].directions_link, "https://www.google.com/maps/dir/12.9,79.1/11.0,78.0")

    def test_process_matrix_response_with_errors(self):
        """Test processing of a response with unreachable elements."""
        mock_response = {
            'rows': [
                {'elements': [_element(10000, 600), {'status': 'ZERO_RESULTS'}]}
            ]
        }

        rows = GoogleRouteProvider._process_matrix_response(
            mock_response, [self.depot], [self.town_x, self.town_y]
        )

        self.assertEqual(rows[0][0].distance_km, 10.0)
        self.assertIsNone(rows[0][1])

    def test_process_matrix_response_missing_elements(self):
        rows = GoogleRouteProvider._process_matrix_response(
            {'rows': [{'elements': [_element(10000, 600)]}]}, [self.depot, self.town_x], [self.town_x, self.town_y]
        )

        self.assertEqual(rows[0][0].distance_km, 10.0)
        self.assertIs(rows[0][1], UNCOMPUTED)
        self.assertEqual(rows[1], [UNCOMPUTED, UNCOMPUTED])

    @patch('requests.get')
    def test_send_request(self, mock_get):
        """Test sending requests to Google API."""
        mock_get.return_value = _json_response({'status': 'OK', 'rows': []})
        params = {'origins': '13.0,80.2', 'destinations': '12.9,79.1', 'key': 'dummy_key'}

        response = GoogleRouteProvider._send_request(GOOGLE_DISTANCE_MATRIX_URL, params)

        args, kwargs = mock_get.call_args
        self.assertEqual(args[0], GOOGLE_DISTANCE_MATRIX_URL)
        self.assertEqual(kwargs.get('params'), params)
        self.assertEqual(kwargs.get('timeout'), REQUEST_TIMEOUT_SECONDS)
        self.assertEqual(response, {'status': 'OK', 'rows': []})

    @patch('time.sleep')
    @patch('requests.get')
    def test_send_request_with_retry(self, mock_get, mock_sleep):
        """Test sending request with retry logic."""
        mock_error_response = _json_response({
            'status': 'OVER_QUERY_LIMIT',
            'error_message': 'Rate limit exceeded'
        })
        mock_success_response = _json_response({'status': 'OK', 'rows': []})

        # Return error on first call, success on second
        mock_get.side_effect = [mock_error_response, mock_success_response]

        response = self.provider._send_request_with_retry(GOOGLE_DISTANCE_MATRIX_URL, {})

        self.assertEqual(mock_get.call_count, 2)
        self.assertTrue(mock_sleep.called)
        self.assertEqual(response, {'status': 'OK', 'rows': []})

    @patch('time.sleep')
    @patch('requests.get')
    def test_send_request_with_retry_max_retries(self, mock_get, mock_sleep):
        """Test max retries being reached."""
        mock_get.return_value = _json_response({
            'status': 'OVER_QUERY_LIMIT',
            'error_message': 'Rate limit exceeded'
        })

        with self.assertRaises(ProviderError) as context:
            self.provider._send_request_with_retry(GOOGLE_DISTANCE_MATRIX_URL, {})

        self.assertTrue("All API request retries failed" in str(context.exception))
        self.assertEqual(mock_get.call_count, MAX_RETRIES)

    @patch('time.sleep')
    @patch('requests.get')
    def test_send_request_with_retry_transport_errors(self, mock_get, mock_sleep):
        mock_get.side_effect = requests.ConnectionError("connection refused")

        with self.assertRaises(ProviderError):
            self.provider._send_request_with_retry(GOOGLE_DISTANCE_MATRIX_URL, {})

        self.assertEqual(mock_get.call_count, MAX_RETRIES)

    @patch('time.sleep')
    @patch('requests.get')
    def test_send_request_denied_is_not_retried(self, mock_get, mock_sleep):
        mock_get.return_value = _json_response({
            'status': 'REQUEST_DENIED',
            'error_message': 'The provided API key is invalid.'
        })

        with self.assertRaises(ProviderError) as context:
            self.provider._send_request_with_retry(GOOGLE_DISTANCE_MATRIX_URL, {})

        self.assertEqual(context.exception.status, 'REQUEST_DENIED')
        self.assertEqual(mock_get.call_count, 1)
        self.assertFalse(mock_sleep.called)

    def test_compute_batch_chunks_and_stitches(self):
        """12 origins x 30 destinations needs four requests at 10 x 25 per request."""
        origins = [KnownLocation(float(i), 0.0) for i in range(12)]
        destinations = [KnownLocation(0.0, float(j)) for j in range(30)]

        def fake_matrix(origin_batch, destination_batch):
            self.assertLessEqual(len(origin_batch), 10)
            self.assertLessEqual(len(destination_batch), 25)
            return {
                'status': 'OK',
                'rows': [
                    {'elements': [_element((o.latitude * 100 + d.longitude) * 1000, 60) for d in destination_batch]}
                    for o in origin_batch
                ]
            }

        with patch.object(self.provider, '_send_matrix_request', side_effect=fake_matrix) as mock_send:
            matrix = self.provider.compute_batch(origins, destinations)

        self.assertEqual(mock_send.call_count, 4)
        self.assertEqual(len(matrix), 12)
        self.assertTrue(all(len(row) == 30 for row in matrix))
        self.assertEqual(matrix[0][0].distance_km, 0.0)
        self.assertEqual(matrix[3][7].distance_km, 307.0)
        self.assertEqual(matrix[11][29].distance_km, 1129.0)

    def test_compute_batch_failed_chunk_leaves_gaps(self):
        origins = [KnownLocation(float(i), 0.0) for i in range(12)]

        responses = [
            ProviderError("quota"),
            {'status': 'OK', 'rows': [{'elements': [_element(1000, 60)]}] * 2},
        ]
        with patch.object(self.provider, '_send_matrix_request', side_effect=responses):
            matrix = self.provider.compute_batch(origins, [self.town_x])

        self.assertTrue(all(matrix[i][0] is UNCOMPUTED for i in range(10)))
        self.assertEqual(matrix[10][0].distance_km, 1.0)
        self.assertEqual(matrix[11][0].distance_km, 1.0)

    def test_compute_batch_raises_when_every_chunk_fails(self):
        with patch.object(self.provider, '_send_matrix_request', side_effect=ProviderError("quota")):
            with self.assertRaises(ProviderError):
                self.provider.compute_batch([self.depot], [self.town_x, self.town_y])

    def test_compute_batch_should_stop_skips_remaining_chunks(self):
        provider = GoogleRouteProvider(api_key='dummy_key', chunk_delay=0, max_destinations=1)
        checks = iter([False, True])

        with patch.object(provider, '_send_matrix_request',
                          return_value={'status': 'OK', 'rows': [{'elements': [_element(1000, 60)]}]}) as mock_send:
            matrix = provider.compute_batch([self.depot], [self.town_x, self.town_y], should_stop=lambda: next(checks))

        self.assertEqual(mock_send.call_count, 1)
        self.assertEqual(matrix[0][0].distance_km, 1.0)
        self.assertIs(matrix[0][1], UNCOMPUTED)

    def test_compute_batch_stopped_before_first_chunk(self):
        with patch.object(self.provider, '_send_matrix_request') as mock_send:
            matrix = self.provider.compute_batch([self.depot], [self.town_x], should_stop=lambda: True)

        self.assertFalse(mock_send.called)
        self.assertEqual(matrix, [[UNCOMPUTED]])

    def test_compute_batch_empty_inputs(self):
        self.assertEqual(self.provider.compute_batch([], [self.town_x]), [])
        self.assertEqual(self.provider.compute_batch([self.depot], []), [[]])

    @patch('requests.post')
    def test_compute_one(self, mock_post):
        mock_post.return_value = _json_response([{
            'originIndex': 0,
            'destinationIndex': 0,
            'condition': 'ROUTE_EXISTS',
            'distanceMeters': 42300,
            'duration': '3480s',
        }])

        result = self.provider.compute_one(self.depot, self.town_x)

        self.assertEqual(result.distance_km, 42.3)
        self.assertEqual(result.duration_minutes, 58)
        self.assertEqual(result.directions_link, "https://www.google.com/maps/dir/13.0,80.2/12.9,79.1")
        self.assertEqual(result.route_metadata['condition'], 'ROUTE_EXISTS')

        _, kwargs = mock_post.call_args
        self.assertEqual(kwargs['headers']['X-Goog-Api-Key'], 'dummy_key')
        self.assertIn('distanceMeters', kwargs['headers']['X-Goog-FieldMask'])
        self.assertEqual(kwargs['json']['travelMode'], 'DRIVE')
        self.assertEqual(kwargs['timeout'], REQUEST_TIMEOUT_SECONDS)

    @patch('requests.post')
    def test_compute_one_no_route(self, mock_post):
        mock_post.return_value = _json_response([{
            'originIndex': 0,
            'destinationIndex': 0,
            'condition': 'ROUTE_NOT_FOUND',
        }])

        self.assertIsNone(self.provider.compute_one(self.depot, self.town_x))

    @patch('requests.post')
    def test_compute_one_http_error(self, mock_post):
        mock_response = MagicMock()
        mock_response.raise_for_status.side_effect = requests.HTTPError(
            "403 Forbidden", response=MagicMock(status_code=403)
        )
        mock_post.return_value = mock_response

        with self.assertRaises(ProviderError) as context:
            self.provider.compute_one(self.depot, self.town_x)

        self.assertEqual(context.exception.status, 403)

    @patch('requests.post')
    @patch('requests.get')
    def test_not_configured(self, mock_get, mock_post):
        provider = GoogleRouteProvider(api_key='')

        self.assertFalse(provider.is_configured)
        with self.assertRaises(ProviderNotConfigured):
            provider.compute_one(self.depot, self.town_x)
        with self.assertRaises(ProviderNotConfigured):
            provider.compute_batch([self.depot], [self.town_x])
        with self.assertRaises(ProviderNotConfigured):
            provider.geocode("Town-Y")
        self.assertFalse(mock_get.called)
        self.assertFalse(mock_post.called)

    def test_geocode_queries_order(self):
        queries = self.provider.geocode_queries("Town-Y", "600002", "Main Road")

        self.assertEqual(queries, [
            "Town-Y, Main Road, 600002, Tamil Nadu, India",
            "Town-Y, 600002, Tamil Nadu, India",
            "600002, Tamil Nadu, India",
            "Town-Y, Main Road, Tamil Nadu, India",
            "Town-Y, Tamil Nadu, India",
        ])

    def test_geocode_queries_name_only(self):
        self.assertEqual(self.provider.geocode_queries("Town-Y"), ["Town-Y, Tamil Nadu, India"])

    @patch('requests.get')
    def test_geocode_query(self, mock_get):
        mock_get.return_value = _json_response({
            'status': 'OK',
            'results': [{'geometry': {'location': {'lat': 11.1, 'lng': 77.3}}}]
        })

        location = self.provider.geocode_query("Town-Y, Tamil Nadu, India")

        self.assertEqual(location, KnownLocation(11.1, 77.3))
        args, kwargs = mock_get.call_args
        self.assertEqual(args[0], GOOGLE_GEOCODE_URL)
        self.assertEqual(kwargs['params']['region'], 'in')
        self.assertEqual(kwargs['params']['address'], "Town-Y, Tamil Nadu, India")

    @patch('requests.get')
    def test_geocode_query_zero_results(self, mock_get):
        mock_get.return_value = _json_response({'status': 'ZERO_RESULTS', 'results': []})

        self.assertIsNone(self.provider.geocode_query("Nowhere, Tamil Nadu, India"))

    def test_geocode_falls_back_in_order(self):
        with patch.object(self.provider, 'geocode_query',
                          side_effect=[None, None, self.town_y]) as mock_query:
            location = self.provider.geocode("Town-Y", pincode="600002")

        self.assertEqual(location, self.town_y)
        self.assertEqual(mock_query.call_count, 3)
        self.assertEqual(mock_query.call_args[0][0], "Town-Y, Tamil Nadu, India")

    def test_geocode_skips_failing_strategy(self):
        with patch.object(self.provider, 'geocode_query',
                          side_effect=[ProviderError("quota"), self.town_y]) as mock_query:
            location = self.provider.geocode("Town-Y", pincode="600002")

        self.assertEqual(location, self.town_y)
        self.assertEqual(mock_query.call_count, 2)

    def test_geocode_no_match(self):
        with patch.object(self.provider, 'geocode_query', return_value=None):
            self.assertIsNone(self.provider.geocode("Town-Y", pincode="600002", address="Main Road"))

    def test_geocode_every_strategy_failed(self):
        with patch.object(self.provider, 'geocode_query', side_effect=ProviderError("denied")):
            with self.assertRaises(ProviderError):
                self.provider.geocode("Town-Y")
