from .application_service import ApplicationService
from .service_container import ServiceContainer, create_container

__all__ = ["ApplicationService", "ServiceContainer", "create_container"]
