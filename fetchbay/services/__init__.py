"""Service layer implementations."""

from fetchbay.services.admission import AdmissionError, AdmissionPipeline, AdmissionTicket
from fetchbay.services.dispatcher import JobDispatcher, RegistrySink
from fetchbay.services.folders import FolderRegistry, parse_folder_mapping
from fetchbay.services.job_registry import (
    JobConflictError,
    JobNotFoundError,
    JobRegistry,
    configure_job_registry,
    get_job_registry,
)
from fetchbay.services.orchestrator import Orchestrator, configure_orchestrator, get_orchestrator

__all__ = [
    # Admission
    "AdmissionError",
    "AdmissionPipeline",
    "AdmissionTicket",
    # Folders
    "FolderRegistry",
    "parse_folder_mapping",
    # Job registry
    "JobConflictError",
    "JobNotFoundError",
    "JobRegistry",
    "configure_job_registry",
    "get_job_registry",
    # Dispatch
    "JobDispatcher",
    "RegistrySink",
    # Orchestrator
    "Orchestrator",
    "configure_orchestrator",
    "get_orchestrator",
]
