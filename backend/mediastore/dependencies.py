from fastapi import Request

from mediastore.services.file_lifecycle import FileLifecycleCoordinator
from mediastore.services.object_storage import ObjectStorageGateway


def get_gateway(request: Request) -> ObjectStorageGateway:
    return request.app.state.gateway


def get_coordinator(request: Request) -> FileLifecycleCoordinator:
    return request.app.state.coordinator
