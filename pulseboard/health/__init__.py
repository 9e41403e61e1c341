"""Health subsystem — status ranking, probe client, scheduler, aggregator."""

from .status import STATUS_MESSAGES, ProbeResult, ProbeStatus, Status, rank, worst, worst_of
