"""Clients for services the coordinator depends on."""

from docflow.services.generation import (
    CreateExecutionAck,
    GenerationService,
    HttpGenerationClient,
)

__all__ = ["CreateExecutionAck", "GenerationService", "HttpGenerationClient"]
