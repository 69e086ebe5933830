"""FastAPI dependency injection providers."""

from fastapi import Request

from duet.backend.memory import InMemoryIdeaLookup, InMemoryProcessingBackend, InMemoryUpdateChannel


def get_backend(request: Request) -> InMemoryProcessingBackend:
    return request.app.state.backend


def get_channel(request: Request) -> InMemoryUpdateChannel:
    return request.app.state.channel


def get_ideas(request: Request) -> InMemoryIdeaLookup:
    return request.app.state.ideas
