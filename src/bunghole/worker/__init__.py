"""Client side of the worker protocol: transport, routes and process supervision."""

from .process import WorkerLaunchSpec, WorkerProcess
from .transport import Err, Ok, TransportResult, WorkerClient, WorkerClientSettings, application_error, unwrap

__all__ = [
    "Err",
    "Ok",
    "TransportResult",
    "WorkerClient",
    "WorkerClientSettings",
    "WorkerLaunchSpec",
    "WorkerProcess",
    "application_error",
    "unwrap",
]
