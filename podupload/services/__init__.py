"""Services for podupload."""
from ..exceptions import ConfigurationError
from ..models import UploadConfig
from ..protocols import IAPIClient, IDurationProbe, ITransportClient
from .api_client import HTTPAPIClient
from .cdn import CdnDirectTransport
from .duration import HttpDurationProbe, NullDurationProbe, decode_duration
from .progress import ProgressEstimator
from .resolver import UrlResolver
from .storage import StorageApiTransport
from .validator import FileValidator, ValidationFailure, ValidationResult

TRANSPORTS = {
    StorageApiTransport.name: StorageApiTransport,
    CdnDirectTransport.name: CdnDirectTransport,
}


def build_transport(config: UploadConfig, api_client: IAPIClient) -> ITransportClient:
    """Instantiate the backend named by config.backend."""
    try:
        transport_cls = TRANSPORTS[config.backend]
    except KeyError:
        raise ConfigurationError(
            f"Unknown backend '{config.backend}' (expected one of: {', '.join(TRANSPORTS)})"
        ) from None
    return transport_cls.from_config(api_client, config)


def build_duration_probe(config: UploadConfig, api_client: HTTPAPIClient) -> IDurationProbe:
    if not config.probe_duration:
        return NullDurationProbe()
    return HttpDurationProbe.from_config(api_client, config)


__all__ = [
    "CdnDirectTransport",
    "FileValidator",
    "HTTPAPIClient",
    "HttpDurationProbe",
    "NullDurationProbe",
    "ProgressEstimator",
    "StorageApiTransport",
    "TRANSPORTS",
    "UrlResolver",
    "ValidationFailure",
    "ValidationResult",
    "build_duration_probe",
    "build_transport",
    "decode_duration",
]
