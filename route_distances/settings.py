# route_distances/settings.py
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name, default='False'):
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes')


# Google Maps API settings
# An empty key is allowed here so read-only endpoints keep working; provider
# calls raise ProviderNotConfigured instead.
GOOGLE_MAPS_API_KEY = os.getenv('GOOGLE_MAPS_API_KEY', '')
GOOGLE_DISTANCE_MATRIX_URL = 'https://maps.googleapis.com/maps/api/distancematrix/json'
GOOGLE_ROUTES_MATRIX_URL = 'https://routes.googleapis.com/distanceMatrix/v2:computeRouteMatrix'
GOOGLE_GEOCODE_URL = 'https://maps.googleapis.com/maps/api/geocode/json'
GOOGLE_DIRECTIONS_BASE_URL = 'https://www.google.com/maps/dir/'

# API request settings
REQUEST_TIMEOUT_SECONDS = float(os.getenv('REQUEST_TIMEOUT_SECONDS', '10'))
MAX_RETRIES = int(os.getenv('MAX_RETRIES', '3'))
BACKOFF_FACTOR = 2  # Exponential backoff
RETRY_DELAY_SECONDS = float(os.getenv('RETRY_DELAY_SECONDS', '1'))

# Legacy Distance Matrix API limits per request
MAX_ORIGINS_PER_REQUEST = int(os.getenv('MAX_ORIGINS_PER_REQUEST', '10'))
MAX_DESTINATIONS_PER_REQUEST = int(os.getenv('MAX_DESTINATIONS_PER_REQUEST', '25'))

# Rate limiting
CHUNK_DELAY_SECONDS = float(os.getenv('CHUNK_DELAY_SECONDS', '0.2'))
PROVIDER_CALL_DELAY_SECONDS = float(os.getenv('PROVIDER_CALL_DELAY_SECONDS', '0.1'))

# Geocoding
GEOCODE_REGION_NAME = os.getenv('GEOCODE_REGION_NAME', 'Tamil Nadu, India')
GEOCODE_REGION_BIAS = os.getenv('GEOCODE_REGION_BIAS', 'in')
GEOCODE_LIMIT_PER_RUN = int(os.getenv('GEOCODE_LIMIT_PER_RUN', '10'))

# Completion budgets. Constrained deployments (short request timeouts) get
# smaller batches and a shorter wall-clock ceiling.
CONSTRAINED_DEPLOYMENT = _env_bool('CONSTRAINED_DEPLOYMENT')
if CONSTRAINED_DEPLOYMENT:
    _BATCH_SIZE_DEFAULT, _FALLBACK_DEFAULT, _BUDGET_DEFAULT = '25', '5', '25'
else:
    _BATCH_SIZE_DEFAULT, _FALLBACK_DEFAULT, _BUDGET_DEFAULT = '100', '10', '55'

BATCH_SIZE_LIMIT = int(os.getenv('BATCH_SIZE_LIMIT', _BATCH_SIZE_DEFAULT))
FALLBACK_LIMIT = int(os.getenv('FALLBACK_LIMIT', _FALLBACK_DEFAULT))
TIME_BUDGET_SECONDS = float(os.getenv('TIME_BUDGET_SECONDS', _BUDGET_DEFAULT))

# Read path
DEFAULT_PAGE_SIZE = int(os.getenv('DEFAULT_PAGE_SIZE', '50'))
MAX_PAGE_SIZE = int(os.getenv('MAX_PAGE_SIZE', '500'))
QUERY_CACHE_TTL_SECONDS = int(os.getenv('QUERY_CACHE_TTL_SECONDS', '300'))

# Export
EXPORT_MAX_CELLS = int(os.getenv('EXPORT_MAX_CELLS', '50000'))
EXPORT_GENERATED_BY = os.getenv('EXPORT_GENERATED_BY', 'Distance Matrix Service')
