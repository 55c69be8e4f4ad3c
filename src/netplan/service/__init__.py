"""Request/response entry points for an external HTTP layer."""

from netplan.service.batch import BatchResponse, run_batch
