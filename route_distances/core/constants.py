# Unit conversions for provider responses
METERS_PER_KILOMETER = 1000.0
SECONDS_PER_MINUTE = 60.0
DISTANCE_DECIMALS = 2          # Kilometers are stored with 2 decimals

# Route condition reported by the Routes API when a drivable route exists
ROUTE_EXISTS = 'ROUTE_EXISTS'
ELEMENT_OK = 'OK'
STATUS_OK = 'OK'
STATUS_OVER_QUERY_LIMIT = 'OVER_QUERY_LIMIT'
STATUS_ZERO_RESULTS = 'ZERO_RESULTS'

# Field mask requested from the Routes API computeRouteMatrix endpoint
ROUTES_FIELD_MASK = 'originIndex,destinationIndex,duration,distanceMeters,status,condition'
TRAVEL_MODE = 'DRIVE'

# Bounds for valid coordinates
MIN_LATITUDE, MAX_LATITUDE = -90.0, 90.0
MIN_LONGITUDE, MAX_LONGITUDE = -180.0, 180.0

# Export layout
EXPORT_DECIMALS = 1
EXPORT_SOURCE_CHUNK_SIZE = 1000
EXPORT_NAME_COLUMN_WIDTH = 25
EXPORT_PINCODE_COLUMN_WIDTH = 12
EXPORT_SOURCE_COLUMN_WIDTH = 15
