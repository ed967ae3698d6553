"""API router subpackage for the GeoPackage merge service.

Each module exposes its own APIRouter for composition in the application's
main FastAPI instance.

Submodules:
    - merges: Endpoint that merges two GeoPackages on the server.
"""
