"""Configuration settings for the bus finder."""

import os
from dotenv import load_dotenv

load_dotenv()

# MTA Bus Time (OneBusAway) API
MTA_BUS_API_KEY = os.getenv("MTA_BUS_API_KEY", "")
MTA_BUS_API_URL = os.getenv("MTA_BUS_API_URL", "https://bustime.mta.info/api/where")
REQUEST_TIMEOUT = float(os.getenv("MTA_BUS_TIMEOUT", "10"))

# Upper bound on concurrent stop-detail lookups
MAX_WORKERS = int(os.getenv("MTA_BUS_MAX_WORKERS", "8"))

# Agencies whose route lists we publish
AGENCIES = {
    "nyct": "MTA NYCT",
    "bc": "MTABC",
}

# Destination shown for the second direction of a loop route
LOOP_DESTINATION = "Refer Above (Bus is a Loop)"

# Proximity search
BASE_SPAN = 0.005  # degrees
METERS_PER_DEGREE = 111000
MAX_LON_SPAN = 360.0
EARTH_RADIUS_METERS = 6371000
METERS_TO_MILES = 0.000621371
DEFAULT_RADIUS_METERS = 500
DEFAULT_MAX_RESULTS = 20
