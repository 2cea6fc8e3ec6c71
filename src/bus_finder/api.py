"""FastAPI web interface for the bus finder."""

from dataclasses import asdict

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .client import CancelToken
from .config import AGENCIES, DEFAULT_MAX_RESULTS, DEFAULT_RADIUS_METERS
from .errors import DecodeError, OperationCancelled, TransportError
from .nearby import nearby_stops
from .routes import fetch_routes
from .stops import stops_for_route

UPSTREAM_TIMEOUT = 30.0

app = FastAPI(
    title="NYC Bus Finder",
    description="MTA bus routes, route stops and nearby stop search",
    version="0.1.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class NearbyRequest(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    radius: float = Field(default=DEFAULT_RADIUS_METERS, gt=0)
    max_results: int = Field(default=DEFAULT_MAX_RESULTS, gt=0)


def _upstream_error(e: Exception) -> HTTPException:
    if isinstance(e, OperationCancelled):
        return HTTPException(status_code=504, detail=str(e))
    return HTTPException(status_code=502, detail=str(e))


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "NYC Bus Finder"}


@app.get("/routes/{agency}")
def get_routes(agency: str):
    """Get an agency's routes grouped by category ("nyct" or "bc")."""
    agency_id = AGENCIES.get(agency.lower())
    if not agency_id:
        raise HTTPException(status_code=404, detail=f"Unknown agency: {agency}")

    try:
        categorized = fetch_routes(agency_id, token=CancelToken(UPSTREAM_TIMEOUT))
    except (TransportError, DecodeError, OperationCancelled) as e:
        raise _upstream_error(e)

    return {
        "agency": agency_id,
        "categories": {
            category: [asdict(route) for route in routes]
            for category, routes in categorized.items()
        },
    }


@app.get("/routes/{route_id}/stops")
def get_route_stops(route_id: str):
    """Get the stops of a route in both directions."""
    try:
        stop_set = stops_for_route(route_id, token=CancelToken(UPSTREAM_TIMEOUT))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except (TransportError, DecodeError, OperationCancelled) as e:
        raise _upstream_error(e)

    return asdict(stop_set)


@app.post("/stops/nearby")
def get_nearby_stops(request: NearbyRequest):
    """Find the stops closest to a coordinate."""
    try:
        stops = nearby_stops(
            request.lat, request.lon, request.radius, request.max_results,
            token=CancelToken(UPSTREAM_TIMEOUT),
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except (TransportError, DecodeError, OperationCancelled) as e:
        raise _upstream_error(e)

    return {
        "count": len(stops),
        "stops": [asdict(stop) for stop in stops],
    }


def run_server(host: str = "0.0.0.0", port: int = 8000):
    """Run the FastAPI server."""
    import uvicorn
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
