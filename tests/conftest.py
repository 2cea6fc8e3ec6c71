"""Shared fixtures: an in-memory stand-in for the Bus Time client."""

import time

import pytest

from bus_finder.errors import TransportError


class FakeClient:
    """Serves canned documents by path instead of calling the network."""

    def __init__(self, documents=None, delays=None):
        self.documents = documents or {}
        self.delays = delays or {}
        self.calls = []

    def _serve(self, path, params, resource, ident, token):
        if token is not None:
            token.raise_if_cancelled(resource)
        self.calls.append((path, params))
        time.sleep(self.delays.get(path, 0))
        document = self.documents.get(path)
        if document is None:
            raise TransportError(resource, ident, status=404, reason="Not Found")
        if callable(document):
            document = document()
        return document

    def get_xml(self, path, params=None, *, resource, ident=None, token=None):
        return self._serve(path, params, resource, ident, token)

    def get_json(self, path, params=None, *, resource, ident=None, token=None):
        return self._serve(path, params, resource, ident, token)


def stop_detail(stop_id, name, lat="40.75", lon="-73.98", **extra):
    """A decoded stop/{id}.xml document."""
    data = {"id": stop_id, "name": name, "lat": lat, "lon": lon}
    data.update(extra)
    return {"response": {"code": "200", "data": data}}


@pytest.fixture
def fake_client():
    def build(documents=None, delays=None):
        return FakeClient(documents, delays)
    return build
